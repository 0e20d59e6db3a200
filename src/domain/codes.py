"""Identifier helpers: email normalization, access codes and payment codes."""

import re
import secrets
import string
from datetime import datetime

PAYMENT_CODE_PREFIX = "NE"
PAYMENT_CODE_LENGTH = 18  # prefix + YYMMDDHHMM + 6 random characters

_PAYMENT_CODE_PATTERN = re.compile(r"^NE(\d{10}[A-Z0-9]{6})$")
_PAYMENT_ALPHABET = string.ascii_uppercase + string.digits


def normalize_email(email: str) -> str:
    """Canonical identity form: stripped and lower-cased."""
    return email.strip().lower()


def normalize_ref_code(ref_code: str) -> str:
    """Upper-case a referral code and drop all whitespace."""
    return re.sub(r"\s", "", ref_code).upper()


def generate_user_code() -> str:
    """Five random upper-case letters, the legacy per-user access code."""
    return "".join(secrets.choice(string.ascii_uppercase) for _ in range(5))


def generate_payment_code(now: datetime) -> str:
    """
    Generate a payment code.

    Format: NE + YYMMDDHHMM (10 chars) + 6 random characters, 18 in total.
    The code doubles as the bank transfer memo.
    """
    random_part = "".join(secrets.choice(_PAYMENT_ALPHABET) for _ in range(6))
    return f"{PAYMENT_CODE_PREFIX}{now:%y%m%d%H%M}{random_part}"


def extract_pay_code_id(code: str) -> str | None:
    """
    Strip the prefix from a payment code.

    Returns:
        The 16-character storage id, or None if the code is malformed
    """
    match = _PAYMENT_CODE_PATTERN.match(code.strip())
    if match is None:
        return None
    return match.group(1)
