from __future__ import annotations

import re
import secrets

CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
CODE_LENGTH = 8

_CODE_WHITESPACE_PATTERN = re.compile(r"\s+")
_NON_DIGIT_PATTERN = re.compile(r"\D")


def normalize_coupon_code(raw_code: str) -> str:
    return _CODE_WHITESPACE_PATTERN.sub("", raw_code.strip()).upper()


def generate_coupon_code(length: int = CODE_LENGTH) -> str:
    if length <= 0:
        raise ValueError("length must be positive")
    return "".join(secrets.choice(CODE_ALPHABET) for _ in range(length))


def normalize_phone(raw_phone: str | None) -> str | None:
    """US numbers to E.164 (``+1XXXXXXXXXX``); anything else is ``None``."""
    if not raw_phone:
        return None
    digits = _NON_DIGIT_PATTERN.sub("", raw_phone)
    if len(digits) == 10:
        digits = f"1{digits}"
    if len(digits) == 11 and digits.startswith("1"):
        return f"+{digits}"
    return None


def normalize_email(raw_email: str | None) -> str | None:
    if raw_email is None:
        return None
    email = raw_email.strip().lower()
    return email or None
