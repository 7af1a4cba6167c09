"""
Username and profile helpers: normalization, format checks, search terms.
"""
import re
import unicodedata
from typing import Optional
from django.conf import settings


def normalize_username(raw: str) -> str:
    """
    Normalize a username to canonical form.

    Rules:
    - Strip leading/trailing whitespace
    - Apply Unicode NFKC normalization
    - Convert to lowercase (for case-insensitive uniqueness)

    Used by registration, public profile lookups and the model save path.

    Example:
        >>> normalize_username("  AliceQubit  ")
        'alicequbit'
    """
    if raw is None:
        return raw
    s = raw.strip()
    s = unicodedata.normalize("NFKC", s)
    return s.lower()


def is_username_format_valid(username: str) -> tuple[bool, Optional[str]]:
    """
    Check if username matches the required format (regex and length).
    Does NOT check availability.

    Uses settings:
    - USERNAME_REGEX (default: ^[a-z0-9_]{3,32}$)
    - USERNAME_MIN_LEN (default: 3)
    - USERNAME_MAX_LEN (default: 32)

    Returns:
        (is_valid, error_code) tuple; error_code is one of
        'username_required', 'too_short', 'too_long', 'invalid_format'.
    """
    if not username:
        return False, 'username_required'

    normalized = normalize_username(username)

    min_len = getattr(settings, 'USERNAME_MIN_LEN', 3)
    max_len = getattr(settings, 'USERNAME_MAX_LEN', 32)

    if len(normalized) < min_len:
        return False, 'too_short'
    if len(normalized) > max_len:
        return False, 'too_long'

    pattern = getattr(settings, 'USERNAME_REGEX', r'^[a-z0-9_]{3,32}$')
    if not re.match(pattern, normalized):
        return False, 'invalid_format'

    return True, None


def get_username_error_message(error_code: str) -> str:
    """Human-readable message for a username error code."""
    min_len = getattr(settings, 'USERNAME_MIN_LEN', 3)
    max_len = getattr(settings, 'USERNAME_MAX_LEN', 32)
    messages = {
        'username_required': 'Username is required.',
        'too_short': f'Username must be at least {min_len} characters long.',
        'too_long': f'Username must be at most {max_len} characters long.',
        'invalid_format': 'Username can only contain lowercase letters, numbers, and underscores.',
        'taken': 'This username is already taken.',
    }
    return messages.get(error_code, 'Invalid username.')


def split_search_terms(query: str) -> list[str]:
    """Split a directory search box value into non-empty lowercase terms."""
    if not query:
        return []
    return [t for t in normalize_username(query).split() if t]
