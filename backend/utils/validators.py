"""
Input validation utilities for the EliteVault storefront.

Provides reusable validators for customer data and the anonymous cart header.
Every validator returns the normalized value or raises ValidationError (400).
"""
import re

from fastapi import Header

from domain.constants import CART_SESSION_HEADER
from domain.errors import ValidationError

_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_SESSION_ID_RE = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

# bcrypt only looks at the first 72 bytes of a password
MAX_PASSWORD_BYTES = 72


def normalize_email(email: str) -> str:
    """Trim and lower-case an email address, rejecting malformed ones."""
    value = (email or "").strip().lower()
    if not value or len(value) > 255 or not _EMAIL_RE.match(value):
        raise ValidationError("Invalid email address", field="email")
    return value


def validate_password(password: str) -> str:
    if not password or len(password) < 6:
        raise ValidationError("Password must have at least 6 characters", field="password")
    if len(password.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValidationError(
            f"Password must be at most {MAX_PASSWORD_BYTES} bytes", field="password"
        )
    return password


def normalize_whatsapp(number: str | None) -> str | None:
    """
    Keep only digits of a WhatsApp number.

    Accepts 10-13 digits (DDD + number, optionally prefixed with country code 55).
    """
    if number is None or not number.strip():
        return None
    digits = re.sub(r"\D", "", number)
    if not 10 <= len(digits) <= 13:
        raise ValidationError("WhatsApp number must have 10 to 13 digits", field="whatsapp")
    return digits


def validate_cpf(tax_id: str | None) -> str | None:
    """
    Validate a Brazilian CPF and return its 11 digits.

    Punctuation ("123.456.789-09") is accepted and stripped. Both check
    digits are verified; repeated-digit CPFs ("111.111.111-11") are rejected.
    """
    if tax_id is None or not tax_id.strip():
        return None
    digits = re.sub(r"\D", "", tax_id)
    if len(digits) != 11 or digits == digits[0] * 11:
        raise ValidationError("Invalid CPF", field="taxId")

    for position in (9, 10):
        total = sum(int(digits[i]) * (position + 1 - i) for i in range(position))
        check = (total * 10) % 11 % 10
        if check != int(digits[position]):
            raise ValidationError("Invalid CPF checksum", field="taxId")

    return digits


def validate_cart_session_id(session_id: str | None) -> str:
    if not session_id:
        raise ValidationError(f"{CART_SESSION_HEADER} header is required")
    if not _SESSION_ID_RE.match(session_id):
        raise ValidationError(f"Invalid {CART_SESSION_HEADER} header")
    return session_id


def cart_session_id(
    x_session_id: str | None = Header(None, alias=CART_SESSION_HEADER),
) -> str:
    """FastAPI dependency for the anonymous cart header."""
    return validate_cart_session_id(x_session_id)


def optional_cart_session_id(
    x_session_id: str | None = Header(None, alias=CART_SESSION_HEADER),
) -> str | None:
    """Like cart_session_id, but a missing header yields None."""
    if not x_session_id:
        return None
    return validate_cart_session_id(x_session_id)
