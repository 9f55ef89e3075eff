"""
Receipt reconciliation: candidate items -> reviewed drafts -> inventory rows.

Nothing here is persisted until commit_batch() runs; abandoning a review
leaves only the receipt record behind.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from sqlalchemy.exc import SQLAlchemyError

from utils.inventory_store import (
    DEFAULT_UNIT, coerce_quantity, create_food_item, get_owned_category, parse_date
)
from utils.receipt_extraction import CandidateItem, candidate_from_raw, normalize_category_hint

logger = logging.getLogger(__name__)

DEFAULT_CATEGORY_NAME = 'Refrigerator'

CATEGORY_HINT_TO_NAME = {
    'refrigerated': 'Refrigerator',
    'frozen': 'Freezer',
    'vegetable': 'Vegetable Drawer',
    'ambient': 'Refrigerator',
}

DEFAULT_SHELF_LIFE_DAYS = 7

# First matching marker wins, so the more specific locations come first
_SHELF_LIFE_RULES = [
    (('vegetable', '野菜'), 5),
    (('freezer', 'frozen', '冷凍'), 30),
    (('ambient', 'pantry', 'room temperature', '常温'), 14),
    (('chilled', 'dairy', 'meat', 'チルド'), 3),
    (('refrigerator', 'fridge', '冷蔵'), 7),
]

GENERIC_NAME_MARKERS = [
    'fresh produce', 'assorted', 'direct from farm', 'farm direct', 'local produce',
    'mixed vegetables', 'produce',
    '青果', '野菜各種', '産直', '地場野菜', '詰め合わせ',
]

CONCRETE_VEGETABLES = [
    'Tomato', 'Cucumber', 'Carrot', 'Onion', 'Potato', 'Cabbage', 'Lettuce',
    'Spinach', 'Broccoli', 'Bell Pepper', 'Eggplant', 'Zucchini', 'Daikon',
    'Green Onion', 'Bean Sprouts', 'Mushroom', 'Pumpkin', 'Sweet Potato',
    'Corn', 'Celery',
]

_EDITABLE_FIELDS = ('name', 'category_id', 'quantity', 'unit', 'expiry_date')


# ============================================================
# PURE RULES
# ============================================================

def shelf_life_days(category_name) -> int:
    """Default days until expiry for an item stored in category_name."""
    name = (category_name or '').strip().lower()
    for markers, days in _SHELF_LIFE_RULES:
        if any(marker in name for marker in markers):
            return days
    return DEFAULT_SHELF_LIFE_DAYS


def default_expiry_date(category_name, today: Optional[date] = None) -> date:
    today = today or date.today()
    return today + timedelta(days=shelf_life_days(category_name))


def is_generic_name(name) -> bool:
    text = (name or '').strip().lower()
    return any(marker in text for marker in GENERIC_NAME_MARKERS)


def resolve_category(hint, categories):
    """
    Pick the owner's category for a model-produced hint.
    Falls back to the owner's first category; None only when there are none.
    """
    if not categories:
        return None
    target = CATEGORY_HINT_TO_NAME.get(normalize_category_hint(hint), DEFAULT_CATEGORY_NAME)
    for category in categories:
        if (category.name or '').strip().lower() == target.lower():
            return category
    return categories[0]


def _category_by_id(categories, category_id):
    try:
        category_id = int(category_id)
    except (TypeError, ValueError):
        return None
    for category in categories:
        if category.id == category_id:
            return category
    return None


# ============================================================
# DRAFTS
# ============================================================

@dataclass
class DraftItem:
    """One reviewable row built from a candidate item."""

    candidate: CandidateItem
    suggested_category_id: Optional[int] = None
    suggested_expiry_date: Optional[date] = None
    edits: dict = field(default_factory=dict)
    accepted: bool = True
    source_index: Optional[int] = None

    @property
    def needs_name_selection(self) -> bool:
        return is_generic_name(self.candidate.name)

    @property
    def name(self) -> str:
        return self.edits.get('name', self.candidate.name)

    def edit(self, **changes) -> 'DraftItem':
        unknown = set(changes) - set(_EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Cannot edit {', '.join(sorted(unknown))}")

        if 'name' in changes and self.needs_name_selection:
            self.choose_name(changes.pop('name'))

        for key, value in changes.items():
            if key == 'name':
                if not isinstance(value, str) or not value.strip():
                    raise ValueError("name is required")
                value = value.strip()
            elif key == 'quantity':
                value = coerce_quantity(value, strict=True)
            elif key == 'expiry_date':
                value = parse_date(value)
            self.edits[key] = value
        return self

    def reject(self) -> 'DraftItem':
        self.accepted = False
        return self

    def choose_name(self, name: str) -> 'DraftItem':
        """Replace a generic produce name with a concrete vegetable."""
        if self.needs_name_selection:
            match = next((v for v in CONCRETE_VEGETABLES if v.lower() == (name or '').strip().lower()), None)
            if match is None:
                raise ValueError(f"Choose one of the listed vegetables, not {name!r}")
            self.edits['name'] = match
        else:
            self.edit(name=name)
        return self

    def to_dict(self) -> dict:
        return {
            'candidate': self.candidate.to_dict(),
            'name': self.name,
            'suggestedCategoryId': self.suggested_category_id,
            'suggestedExpiryDate': self.suggested_expiry_date.isoformat() if self.suggested_expiry_date else None,
            'needsNameSelection': self.needs_name_selection,
            'nameOptions': CONCRETE_VEGETABLES if self.needs_name_selection else [],
            'accepted': self.accepted,
            'sourceIndex': self.source_index,
        }


def build_drafts(candidates, categories, today: Optional[date] = None) -> list:
    """
    One draft per usable candidate, with category and expiry suggestions filled in.

    Unusable candidates are skipped; each draft keeps the position of its
    candidate in source_index.
    """
    drafts = []
    for index, raw in enumerate(candidates):
        candidate = candidate_from_raw(raw)
        if candidate is None:
            logger.debug("Skipping unusable candidate %r", raw)
            continue
        category = resolve_category(candidate.category, categories)
        drafts.append(DraftItem(
            candidate=candidate,
            suggested_category_id=category.id if category else None,
            suggested_expiry_date=default_expiry_date(category.name if category else None, today),
            source_index=index,
        ))
    return drafts


def confirm_drafts(drafts, categories, today: Optional[date] = None):
    """
    Turn accepted drafts into batch payloads.

    Returns (confirmed, failures). Rejected drafts are left out without a
    failure entry; every other problem is reported per draft.
    """
    confirmed, failures = [], []

    for draft in drafts:
        if not draft.accepted:
            continue

        name = (draft.name or '').strip()
        if not name:
            failures.append({'item': draft.to_dict(), 'reason': 'Name is required'})
            continue
        if is_generic_name(name):
            failures.append({'item': draft.to_dict(), 'reason': 'Choose a specific vegetable name first'})
            continue

        category_id = draft.edits.get('category_id', draft.suggested_category_id)
        if category_id is None:
            failures.append({'item': draft.to_dict(), 'reason': 'No category available'})
            continue
        category = _category_by_id(categories, category_id)
        if category is None:
            failures.append({'item': draft.to_dict(), 'reason': f'Category {category_id} does not belong to this user'})
            continue

        expiry = draft.edits.get('expiry_date')
        if expiry is None:
            expiry = default_expiry_date(category.name, today)

        confirmed.append({
            'name': name,
            'categoryId': category.id,
            'quantity': draft.edits.get('quantity', draft.candidate.quantity or 1),
            'unit': draft.edits.get('unit') or draft.candidate.unit or DEFAULT_UNIT,
            'expiryDate': expiry.isoformat(),
        })

    return confirmed, failures


# ============================================================
# BATCH COMMIT
# ============================================================

class BatchItemPayload(BaseModel):
    """One item of a batch insert request (camelCase on the wire)."""

    model_config = ConfigDict(populate_by_name=True, extra='ignore')

    name: str
    category_id: int = Field(alias='categoryId')
    quantity: int = 1
    unit: str = DEFAULT_UNIT
    expiry_date: Optional[date] = Field(default=None, alias='expiryDate')
    image_url: Optional[str] = Field(default=None, alias='imageUrl')
    protein: float = 0
    carbs: float = 0
    fats: float = 0
    calories: float = 0

    @field_validator('name')
    @classmethod
    def _check_name(cls, value):
        if not value.strip():
            raise ValueError('name is required')
        if is_generic_name(value):
            raise ValueError('generic produce name; choose a specific vegetable')
        return value.strip()

    @field_validator('quantity', mode='before')
    @classmethod
    def _check_quantity(cls, value):
        return coerce_quantity(value, strict=True)

    @field_validator('unit', mode='before')
    @classmethod
    def _default_unit(cls, value):
        if not isinstance(value, str) or not value.strip():
            return DEFAULT_UNIT
        return value.strip()

    @field_validator('expiry_date', mode='before')
    @classmethod
    def _parse_expiry(cls, value):
        return parse_date(value)

    @field_validator('protein', 'carbs', 'fats', 'calories', mode='before')
    @classmethod
    def _zero_if_missing(cls, value):
        return 0 if value is None or value == '' else value


def _validation_reason(error: ValidationError) -> str:
    parts = []
    for detail in error.errors():
        location = '.'.join(str(p) for p in detail.get('loc', ())) or 'item'
        parts.append(f"{location}: {detail.get('msg')}")
    return '; '.join(parts)


@dataclass
class BatchResult:
    created_count: int = 0
    items: list = field(default_factory=list)
    failures: list = field(default_factory=list)

    @property
    def failed(self) -> bool:
        return self.created_count == 0

    def to_dict(self) -> dict:
        data = {
            'success': not self.failed,
            'createdCount': self.created_count,
            'items': [item.to_dict() for item in self.items],
        }
        if self.failures:
            data['failures'] = self.failures
        return data


def commit_batch(session, owner_id: str, items) -> BatchResult:
    """
    Insert every valid item; collect a failure entry for each invalid one.

    Each insert runs in its own SAVEPOINT so one bad row never takes the
    others down. Does NOT commit; the caller commits the outer transaction.
    """
    result = BatchResult()

    for index, raw in enumerate(items or []):
        if not isinstance(raw, dict):
            result.failures.append({'index': index, 'item': raw, 'reason': 'Item must be an object'})
            continue

        try:
            payload = BatchItemPayload.model_validate(raw)
        except ValidationError as e:
            result.failures.append({'index': index, 'item': raw, 'reason': _validation_reason(e)})
            continue

        expiry = payload.expiry_date
        try:
            with session.begin_nested():
                if expiry is None:
                    category = get_owned_category(session, owner_id, payload.category_id)
                    if category is not None:
                        expiry = default_expiry_date(category.name)
                food_item = create_food_item(
                    session,
                    owner_id,
                    name=payload.name,
                    category_id=payload.category_id,
                    quantity=payload.quantity,
                    unit=payload.unit,
                    expiry_date=expiry,
                    image_url=payload.image_url,
                    protein=payload.protein,
                    carbs=payload.carbs,
                    fats=payload.fats,
                    calories=payload.calories,
                )
        except ValueError as e:
            result.failures.append({'index': index, 'item': raw, 'reason': str(e)})
            continue
        except SQLAlchemyError as e:
            logger.warning("Batch insert failed for item %d: %s", index, e)
            result.failures.append({'index': index, 'item': raw, 'reason': 'Could not save item'})
            continue

        result.items.append(food_item)
        result.created_count += 1

    logger.info(
        "Batch commit for %s: %d created, %d failed",
        owner_id, result.created_count, len(result.failures)
    )
    return result
