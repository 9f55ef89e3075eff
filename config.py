"""
Application settings for the Pantry Tracker API.
Values come from environment variables (optionally via a .env file).
"""

import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

DEFAULT_DATABASE_URL = 'sqlite:///pantry_tracker.db'
DEFAULT_MAX_IMAGE_BYTES = 10 * 1024 * 1024  # 10MB


def _env_bool(name, default=False):
    value = os.environ.get(name)
    if value is None or not value.strip():
        return default
    return value.strip().lower() in ('1', 'true', 'yes', 'on')


def _env_int(name, default):
    value = os.environ.get(name)
    try:
        return int(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def _env_float(name, default):
    value = os.environ.get(name)
    try:
        return float(value) if value is not None else default
    except (TypeError, ValueError):
        return default


def normalize_database_url(url: str) -> str:
    """Hosted Postgres providers hand out postgres:// but SQLAlchemy needs postgresql://"""
    if url.startswith('postgres://'):
        return url.replace('postgres://', 'postgresql://', 1)
    return url


@dataclass
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    openai_api_key: str = ''
    openai_model: str = 'gpt-4o'
    openai_timeout: float = 60.0
    openai_max_retries: int = 2
    max_image_bytes: int = DEFAULT_MAX_IMAGE_BYTES
    auth_required: bool = False
    openfoodfacts_url: str = 'https://world.openfoodfacts.org'
    product_lookup_timeout: float = 10.0
    log_level: str = 'INFO'
    cors_origins: list = field(default_factory=lambda: ['*'])

    @classmethod
    def from_env(cls, dotenv: bool = True) -> 'Settings':
        """Build settings from the process environment."""
        if dotenv:
            load_dotenv()

        origins = os.environ.get('CORS_ORIGINS', '*')
        return cls(
            database_url=normalize_database_url(
                os.environ.get('DATABASE_URL', DEFAULT_DATABASE_URL).strip()
            ),
            openai_api_key=os.environ.get('OPENAI_API_KEY', '').strip(),
            openai_model=os.environ.get('OPENAI_MODEL', 'gpt-4o').strip(),
            openai_timeout=_env_float('OPENAI_TIMEOUT', 60.0),
            openai_max_retries=_env_int('OPENAI_MAX_RETRIES', 2),
            max_image_bytes=_env_int('MAX_IMAGE_BYTES', DEFAULT_MAX_IMAGE_BYTES),
            auth_required=_env_bool('AUTH_REQUIRED', False),
            openfoodfacts_url=os.environ.get(
                'OPENFOODFACTS_URL', 'https://world.openfoodfacts.org'
            ).strip().rstrip('/'),
            product_lookup_timeout=_env_float('PRODUCT_LOOKUP_TIMEOUT', 10.0),
            log_level=os.environ.get('LOG_LEVEL', 'INFO').strip().upper(),
            cors_origins=[o.strip() for o in origins.split(',') if o.strip()] or ['*'],
        )
