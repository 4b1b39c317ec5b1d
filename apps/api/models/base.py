"""Shared helpers for models keyed by short string ids."""
import secrets
import string

_ALPHABET = string.ascii_letters + string.digits


def generate_id(length: int = 12) -> str:
    """Return a short random id compatible with the legacy 12-char keys."""
    return ''.join(secrets.choice(_ALPHABET) for _ in range(length))
