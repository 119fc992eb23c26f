"""
Secret code generation and hashing.

Format: 6 characters from A-Z and 0-9. Generated codes use 2 letters
followed by 4 digits (e.g. ``KX4821``); officer-supplied codes may use any
mix. Codes are stored as HMAC-SHA256(pepper, salt + code) with a per-record
random salt.
"""

import hashlib
import hmac
import re
import secrets
import string

CODE_LENGTH = 6
CODE_PATTERN = re.compile(r"^[A-Z0-9]{6}$")


def normalize_code(code: str) -> str:
    return code.strip().upper()


def validate_format(code: str) -> bool:
    """Return True if ``code`` is a well-formed secret code."""
    return bool(CODE_PATTERN.match(normalize_code(code)))


def generate_code() -> str:
    """Generate a random code: 2 uppercase letters + 4 digits."""
    letters = "".join(secrets.choice(string.ascii_uppercase) for _ in range(2))
    digits = "".join(secrets.choice(string.digits) for _ in range(4))
    return letters + digits


def generate_salt() -> str:
    return secrets.token_hex(16)


def hash_code(code: str, salt: str, pepper: str) -> str:
    return hmac.new(
        pepper.encode(), (salt + normalize_code(code)).encode(), hashlib.sha256,
    ).hexdigest()


def verify_code(code: str, salt: str, pepper: str, expected_hash: str) -> bool:
    """Constant-time comparison of a submitted code against its stored hash."""
    return hmac.compare_digest(hash_code(code, salt, pepper), expected_hash)
