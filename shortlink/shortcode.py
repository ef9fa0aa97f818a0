"""Short code generation.

Codes are fixed-length strings drawn from a base62 alphabet with nanoid,
which uses the operating system's cryptographic random source. With the
default length of 6 the code space holds 62**6 (about 5.7e10) codes, so the
chance that a fresh candidate collides with a live code stays negligible
until tens of millions of links exist.

How to Use
===========
::
    from shortlink.shortcode import generate_short_code

    code = generate_short_code()            # e.g. "a1B2c3"
    code = generate_short_code(length=8)

Key Behaviours
===============
- Pure function of internal randomness; no I/O and no state between calls.
- Each call yields an independent candidate, so the arbiter can call it
  again after every collision.
"""

__all__ = ["ALPHABET", "RESERVED_CODES", "generate_short_code", "check_custom_code"]

from nanoid import generate

from shortlink.config import get_settings

settings = get_settings()

ALPHABET = settings.SHORT_CODE_ALPHABET


def generate_short_code(length: int = settings.SHORT_CODE_LENGTH, alphabet: str = ALPHABET) -> str:
    assert isinstance(length, int) and length > 0, f"length must be a positive integer, got {length!r}"
    assert len(alphabet) > 1, "alphabet must contain at least two symbols"
    return generate(alphabet, length)


RESERVED_CODES = frozenset({"api", "health", "metrics", "docs", "redoc", "openapi"})


def check_custom_code(code: str, min_length: int = 3, max_length: int = 20) -> str | None:
    """Return why ``code`` cannot be used as a custom code, or None if it can."""
    if len(code) < min_length or len(code) > max_length:
        return f"Custom code must be between {min_length} and {max_length} characters"
    if not (code.isascii() and code.isalnum()):
        return "Custom code must be alphanumeric"
    if code.lower() in RESERVED_CODES:
        return f"Custom code '{code}' is reserved"
    return None
