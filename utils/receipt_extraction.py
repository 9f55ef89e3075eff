"""
Receipt extraction: receipt photo -> OpenAI vision -> free-form text -> candidate items.

The model is asked for JSON but nothing enforces it on the far side, so the
reply goes through parse_extracted_items(), which recovers what it can in a
fixed order:

  1. greedy outer-brace capture + strict JSON parse (authoritative when it parses)
  2. line scanning for name/item/product hints
  3. fixed food vocabulary matched against the whole text

An empty list is a valid result. The raw text is always handed back so the
user can see what the model actually said.
"""

import base64
import enum
import json
import logging
import re
from dataclasses import dataclass, field
from typing import Literal, Optional

import openai
from openai import OpenAI
from pydantic import BaseModel, ValidationError, field_validator

from config import DEFAULT_MAX_IMAGE_BYTES
from utils.inventory_store import DEFAULT_UNIT, coerce_quantity

logger = logging.getLogger(__name__)

ALLOWED_MIME_TYPES = {'image/jpeg', 'image/jpg', 'image/png'}

CategoryHint = Literal['refrigerated', 'frozen', 'vegetable', 'ambient']
DEFAULT_CATEGORY_HINT = 'refrigerated'

_CATEGORY_SYNONYMS = {
    'refrigerated': 'refrigerated',
    'refrigerator': 'refrigerated',
    'fridge': 'refrigerated',
    'chilled': 'refrigerated',
    'cold': 'refrigerated',
    '冷蔵': 'refrigerated',
    'frozen': 'frozen',
    'freezer': 'frozen',
    '冷凍': 'frozen',
    'vegetable': 'vegetable',
    'vegetables': 'vegetable',
    'produce': 'vegetable',
    '野菜': 'vegetable',
    'ambient': 'ambient',
    'room temperature': 'ambient',
    'room-temperature': 'ambient',
    'pantry': 'ambient',
    'shelf': 'ambient',
    '常温': 'ambient',
}

EXTRACTION_PROMPT = """You are reading a photographed grocery receipt.

Extract ONLY food and drink items. Skip toiletries, household goods, bags,
deposits and any other non-food merchandise.

Return a JSON object in exactly this shape:
{
  "extractedItems": [
    {
      "name": "product name as printed, made readable",
      "category": "refrigerated" | "frozen" | "vegetable" | "ambient",
      "quantity": 1,
      "unit": "piece" | "pack" | "bag" | "bottle" | "g" | "ml"
    }
  ]
}

Rules:
- quantity is a whole number; use 1 when it is not printed
- choose the category from how the item is normally stored at home
- try to find at least one food item
- reply with the JSON object only, no markdown"""


# ============================================================
# ERRORS
# ============================================================

class ExtractionErrorKind(str, enum.Enum):
    CONFIGURATION_MISSING = 'configuration_missing'
    SERVICE_UNAVAILABLE = 'service_unavailable'
    RATE_LIMITED = 'rate_limited'
    INVALID_IMAGE = 'invalid_image'


_RETRYABLE = {ExtractionErrorKind.SERVICE_UNAVAILABLE, ExtractionErrorKind.RATE_LIMITED}


class ExtractionError(Exception):
    """Raised when the receipt could not be sent to / answered by the model."""

    def __init__(self, kind: ExtractionErrorKind, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.kind = kind
        self.message = message
        self.status_code = status_code

    @property
    def retryable(self) -> bool:
        return self.kind in _RETRYABLE

    def to_dict(self) -> dict:
        return {
            'error': self.message,
            'kind': self.kind.value,
            'retryable': self.retryable,
        }


def classify_provider_error(status_code: Optional[int], message: str = '') -> ExtractionError:
    """Map an HTTP status and provider message to an ExtractionError."""
    text = (message or '').lower()

    if status_code in (401, 403) or 'api key' in text or 'api_key' in text:
        return ExtractionError(
            ExtractionErrorKind.CONFIGURATION_MISSING,
            'The receipt reader is not configured correctly (API key rejected).',
            status_code,
        )
    if status_code == 429 or 'rate limit' in text or 'quota' in text:
        return ExtractionError(
            ExtractionErrorKind.RATE_LIMITED,
            'The receipt reader is busy. Please wait a moment and try again.',
            status_code,
        )
    if status_code in (400, 413, 415, 422):
        return ExtractionError(
            ExtractionErrorKind.INVALID_IMAGE,
            'The image could not be read. Please retake the photo.',
            status_code,
        )
    return ExtractionError(
        ExtractionErrorKind.SERVICE_UNAVAILABLE,
        'The receipt reader is unavailable. Please try again.',
        status_code,
    )


# ============================================================
# CANDIDATE ITEMS
# ============================================================

def normalize_category_hint(value) -> Optional[str]:
    if not isinstance(value, str):
        return None
    return _CATEGORY_SYNONYMS.get(value.strip().lower())


class CandidateItem(BaseModel):
    """An extracted, unconfirmed food entry. Never persisted as-is."""

    name: str
    category: Optional[CategoryHint] = None
    quantity: int = 1
    unit: str = DEFAULT_UNIT

    @field_validator('name', mode='before')
    @classmethod
    def _check_name(cls, value):
        if not isinstance(value, str) or not value.strip():
            raise ValueError('name must be a non-empty string')
        return value.strip()[:100]

    @field_validator('category', mode='before')
    @classmethod
    def _normalize_category(cls, value):
        return normalize_category_hint(value)

    @field_validator('quantity', mode='before')
    @classmethod
    def _coerce_quantity(cls, value):
        return coerce_quantity(value)

    @field_validator('unit', mode='before')
    @classmethod
    def _default_unit(cls, value):
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_UNIT
        return value.strip()[:20]

    def to_dict(self) -> dict:
        return self.model_dump()


def candidate_from_raw(raw) -> Optional[CandidateItem]:
    """Build a CandidateItem from one model-produced entry, or None if unusable."""
    if isinstance(raw, CandidateItem):
        return raw
    if not isinstance(raw, dict):
        return None
    try:
        return CandidateItem.model_validate({
            'name': raw.get('name'),
            'category': raw.get('category'),
            'quantity': raw.get('quantity'),
            'unit': raw.get('unit'),
        })
    except ValidationError:
        return None


def _default_candidate(name: str) -> CandidateItem:
    return CandidateItem(name=name, category=DEFAULT_CATEGORY_HINT, quantity=1, unit=DEFAULT_UNIT)


# ============================================================
# OUTPUT RECOVERY
# ============================================================

_JSON_BLOCK = re.compile(r'\{.*\}', re.DOTALL)

_LINE_HINT = re.compile(r'name|item|product|名|食材|商品', re.IGNORECASE)
_HINT_WORDS = {'name', 'names', 'item', 'items', 'product', 'products', '名', '食材', '商品', '商品名'}
_VALUE_AFTER_SEPARATOR = re.compile(r'[:：]\s*(.*)$')
_QUOTED = re.compile(r'^["\'“「『]([^"\'”」』]*)')
_NON_NAME_CHARS = re.compile(r'[^0-9A-Za-z぀-ゟ゠-ヿ一-龯 ]+')
_MAX_HEURISTIC_NAME = 100

# (display name, pattern); English terms match whole words, Japanese by substring
FOOD_VOCABULARY = [
    ('豆腐', '豆腐'), ('肉', '肉'), ('魚', '魚'), ('野菜', '野菜'), ('米', '米'),
    ('パン', 'パン'), ('卵', '卵'), ('牛乳', '牛乳'), ('チーズ', 'チーズ'),
    ('ヨーグルト', 'ヨーグルト'), ('果物', '果物'), ('トマト', 'トマト'),
    ('きゅうり', 'きゅうり'), ('にんじん', 'にんじん'), ('たまねぎ', 'たまねぎ'),
    ('じゃがいも', 'じゃがいも'), ('キャベツ', 'キャベツ'), ('レタス', 'レタス'),
    ('ほうれん草', 'ほうれん草'),
    ('Tofu', r'\btofu\b'), ('Meat', r'\bmeats?\b'), ('Fish', r'\bfish\b'),
    ('Rice', r'\brice\b'), ('Bread', r'\bbreads?\b'), ('Eggs', r'\beggs?\b'),
    ('Milk', r'\bmilk\b'), ('Cheese', r'\bcheeses?\b'), ('Yogurt', r'\byogh?urts?\b'),
    ('Tomato', r'\btomato(?:es|s)?\b'), ('Cucumber', r'\bcucumbers?\b'),
    ('Carrot', r'\bcarrots?\b'), ('Onion', r'\bonions?\b'),
    ('Potato', r'\bpotato(?:es|s)?\b'), ('Cabbage', r'\bcabbages?\b'),
    ('Lettuce', r'\blettuces?\b'), ('Spinach', r'\bspinach\b'),
    ('Chicken', r'\bchicken\b'), ('Beef', r'\bbeef\b'), ('Pork', r'\bpork\b'),
    ('Butter', r'\bbutter\b'), ('Apple', r'\bapples?\b'), ('Banana', r'\bbananas?\b'),
]
_VOCABULARY_PATTERNS = [(name, re.compile(pattern, re.IGNORECASE)) for name, pattern in FOOD_VOCABULARY]


def _items_from_json(text: str):
    """Returns a list when a JSON object parsed, None otherwise."""
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        payload = json.loads(match.group())
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None

    raw_items = payload.get('extractedItems')
    if not isinstance(raw_items, list):
        return []

    items = []
    for raw in raw_items:
        candidate = candidate_from_raw(raw)
        if candidate is not None:
            items.append(candidate)
    return items


def _line_candidate_name(line: str) -> str:
    separated = _VALUE_AFTER_SEPARATOR.search(line)
    value = separated.group(1) if separated else line
    quoted = _QUOTED.match(value.strip())
    if quoted:
        value = quoted.group(1)
    value = _NON_NAME_CHARS.sub('', value)
    return ' '.join(value.split())


def _items_from_lines(text: str) -> list:
    items = []
    for line in text.splitlines():
        if not _LINE_HINT.search(line):
            continue
        name = _line_candidate_name(line)
        if not name or name.lower() in _HINT_WORDS or len(name) > _MAX_HEURISTIC_NAME:
            continue
        items.append(_default_candidate(name))
    return items


def _items_from_keywords(text: str) -> list:
    hits = []
    for name, pattern in _VOCABULARY_PATTERNS:
        for match in pattern.finditer(text):
            hits.append((match.start(), name))
    hits.sort(key=lambda hit: hit[0])
    return [_default_candidate(name) for _, name in hits]


def parse_extracted_items(text: str):
    """
    Recover candidate items from model output.

    Returns (items, strategy) where strategy is one of
    'json', 'lines', 'keywords' or 'none'.
    """
    if not text or not text.strip():
        return [], 'none'

    items = _items_from_json(text)
    if items is not None:
        return items, 'json'

    logger.warning("No parseable JSON in model output, trying line heuristics")
    items = _items_from_lines(text)
    if items:
        return items, 'lines'

    items = _items_from_keywords(text)
    if items:
        return items, 'keywords'

    return [], 'none'


# ============================================================
# SERVICE
# ============================================================

@dataclass
class ExtractionResult:
    raw_text: str
    items: list = field(default_factory=list)
    strategy: str = 'none'

    def items_as_dicts(self) -> list:
        return [item.to_dict() for item in self.items]


class ReceiptExtractionService:
    """
    Wraps the OpenAI vision call and the output recovery.
    Persistence is the caller's job.
    """

    def __init__(self, api_key: str = '', model: str = 'gpt-4o', timeout: float = 60.0,
                 max_retries: int = 2, max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES,
                 client=None):
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self.max_retries = max_retries
        self.max_image_bytes = max_image_bytes
        self._client = client

    @classmethod
    def from_settings(cls, settings) -> 'ReceiptExtractionService':
        return cls(
            api_key=settings.openai_api_key,
            model=settings.openai_model,
            timeout=settings.openai_timeout,
            max_retries=settings.openai_max_retries,
            max_image_bytes=settings.max_image_bytes,
        )

    def _get_client(self):
        if self._client is None:
            self._client = OpenAI(
                api_key=self.api_key,
                timeout=self.timeout,
                max_retries=self.max_retries
            )
        return self._client

    def validate_image(self, image_bytes: bytes, mime_type: str = 'image/jpeg') -> None:
        if not image_bytes:
            raise ExtractionError(ExtractionErrorKind.INVALID_IMAGE, 'No receipt image provided.', 400)
        if len(image_bytes) > self.max_image_bytes:
            limit_mb = self.max_image_bytes / (1024 * 1024)
            raise ExtractionError(
                ExtractionErrorKind.INVALID_IMAGE,
                f'File size exceeds the {limit_mb:g}MB limit.',
                413,
            )
        if (mime_type or '').lower() not in ALLOWED_MIME_TYPES:
            raise ExtractionError(
                ExtractionErrorKind.INVALID_IMAGE,
                'File type not allowed. Only images (png, jpg, jpeg) are accepted.',
                415,
            )

    def extract(self, image_bytes: bytes, mime_type: str = 'image/jpeg') -> ExtractionResult:
        """
        Send the receipt to the model and recover candidate items.

        Raises:
            ExtractionError: configuration, provider or image problems.
        """
        self.validate_image(image_bytes, mime_type)

        if self._client is None and not self.api_key:
            raise ExtractionError(
                ExtractionErrorKind.CONFIGURATION_MISSING,
                'OPENAI_API_KEY is not set. Add it to the server environment to enable receipt scanning.',
            )

        raw_text = self._request_completion(image_bytes, mime_type)
        logger.debug("Raw model response: %s", raw_text)

        items, strategy = parse_extracted_items(raw_text)
        logger.info("Extracted %d candidate item(s) using %s strategy", len(items), strategy)
        return ExtractionResult(raw_text=raw_text, items=items, strategy=strategy)

    def _request_completion(self, image_bytes: bytes, mime_type: str) -> str:
        base64_image = base64.b64encode(image_bytes).decode('utf-8')
        media_type = 'image/jpeg' if mime_type == 'image/jpg' else mime_type

        try:
            response = self._get_client().chat.completions.create(
                model=self.model,
                messages=[{
                    "role": "user",
                    "content": [
                        {"type": "text", "text": EXTRACTION_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {
                                "url": f"data:{media_type};base64,{base64_image}",
                                "detail": "high"
                            }
                        }
                    ]
                }],
                max_tokens=2000,
                temperature=0.2
            )
        except openai.APIStatusError as e:
            logger.warning("OpenAI returned %s: %s", e.status_code, e.message)
            raise classify_provider_error(e.status_code, e.message) from e
        except openai.APIConnectionError as e:
            logger.warning("OpenAI unreachable: %s", e)
            raise ExtractionError(
                ExtractionErrorKind.SERVICE_UNAVAILABLE,
                'The receipt reader could not be reached. Please try again.',
            ) from e

        if not response.choices:
            return ''
        return response.choices[0].message.content or ''
