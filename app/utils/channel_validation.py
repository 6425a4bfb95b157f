"""
Email / phone helpers for OTP delivery channels
"""
import re
from typing import Optional

from email_validator import EmailNotValidError, validate_email

PHONE_PATTERN = re.compile(r"^\+?[1-9]\d{6,14}$")


def is_valid_email(email: Optional[str]) -> bool:
    if not email:
        return False
    try:
        validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True


def clean_phone(phone: str) -> str:
    """Strip everything except digits and a leading '+'"""
    phone = phone.strip()
    digits = re.sub(r"\D", "", phone)
    return f"+{digits}" if phone.startswith("+") else digits


def normalize_phone(phone: str, default_country_code: str) -> str:
    """
    Normalize a phone number to E.164-like form.

    "+31 6 1234" -> "+3161234"
    "0031612345678" -> "+31612345678"
    "0499123456" -> "+<cc>499123456"
    "499123456" -> "+<cc>499123456"
    """
    cleaned = clean_phone(phone)
    if cleaned.startswith("+"):
        return cleaned

    country_code = default_country_code.lstrip("+")
    if cleaned.startswith("00"):
        return f"+{cleaned[2:]}"
    if cleaned.startswith("0"):
        return f"+{country_code}{cleaned[1:]}"
    return f"+{country_code}{cleaned}"


def is_valid_phone(phone: Optional[str]) -> bool:
    if not phone:
        return False
    return bool(PHONE_PATTERN.match(clean_phone(phone)))


def mask_phone(phone: Optional[str]) -> Optional[str]:
    if not phone or len(phone) < 4:
        return phone
    return "*" * (len(phone) - 4) + phone[-4:]


def mask_email(email: Optional[str]) -> Optional[str]:
    if not email or "@" not in email:
        return email
    local, domain = email.split("@", 1)
    visible = local[:2] if len(local) > 2 else local[:1]
    return f"{visible}{'*' * max(len(local) - len(visible), 1)}@{domain}"
