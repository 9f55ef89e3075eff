"""
Guest identity handling.

The deployment has no real login: every request carries an opaque owner id in
the X-User-ID header and the server trusts it as-is. Owner partitioning is a
logical tenancy boundary only, not a security boundary.

Server side: resolve_owner_id() turns a header value into an owner id.
Client side: an IdentityProvider is handed to the API client at construction.
"""

import logging
import random
import string
import time
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)

USER_ID_HEADER = 'X-User-ID'
GUEST_PREFIX = 'guest_'

_INVALID_VALUES = {'', 'undefined', 'null', 'none'}
_ID_ALPHABET = string.ascii_lowercase + string.digits


class MissingIdentityError(Exception):
    """Raised when a request has no usable owner id and identity is required."""


def generate_guest_id() -> str:
    """guest_<epoch millis>_<9 random base36 chars>"""
    suffix = ''.join(random.choices(_ID_ALPHABET, k=9))
    return f"{GUEST_PREFIX}{int(time.time() * 1000)}_{suffix}"


def is_valid_guest_id(value) -> bool:
    if not isinstance(value, str):
        return False
    value = value.strip()
    if value.lower() in _INVALID_VALUES:
        return False
    return value.startswith(GUEST_PREFIX) and len(value) <= 64


def resolve_owner_id(header_value: Optional[str], auth_required: bool = False):
    """
    Resolve the owner id for a request.

    Returns (owner_id, generated). When the header is unusable a fresh guest id
    is generated, unless auth_required is set, in which case
    MissingIdentityError is raised.
    """
    if is_valid_guest_id(header_value):
        return header_value.strip(), False

    if auth_required:
        raise MissingIdentityError(f"A valid {USER_ID_HEADER} header is required")

    owner_id = generate_guest_id()
    logger.warning("No valid %s header (got %r); generated %s", USER_ID_HEADER, header_value, owner_id)
    return owner_id, True


# ============================================================
# CLIENT-SIDE PROVIDERS
# ============================================================

class IdentityProvider:
    """Supplies the stable per-client owner id attached to every API call."""

    def get_user_id(self) -> str:
        raise NotImplementedError

    def reset(self) -> str:
        raise NotImplementedError


class StaticIdentityProvider(IdentityProvider):
    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id or generate_guest_id()

    def get_user_id(self) -> str:
        return self._user_id

    def reset(self) -> str:
        self._user_id = generate_guest_id()
        return self._user_id


class FileIdentityProvider(IdentityProvider):
    """
    Persists the guest id in a small text file, the way a browser client keeps
    it in local storage. The id is generated lazily on first use.
    """

    def __init__(self, path):
        self._path = Path(path).expanduser()
        self._cached: Optional[str] = None

    @property
    def path(self) -> Path:
        return self._path

    def get_user_id(self) -> str:
        if self._cached:
            return self._cached

        if self._path.exists():
            stored = self._path.read_text(encoding='utf-8').strip()
            if is_valid_guest_id(stored):
                self._cached = stored
                return stored
            logger.warning("Ignoring invalid stored identity in %s", self._path)

        return self._store(generate_guest_id())

    def reset(self) -> str:
        return self._store(generate_guest_id())

    def _store(self, user_id: str) -> str:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(user_id, encoding='utf-8')
        self._cached = user_id
        logger.info("Stored new guest identity %s", user_id)
        return user_id
