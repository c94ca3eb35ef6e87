import re

import phonenumbers
from phonenumbers.phonenumberutil import NumberParseException

LOCAL_PHONE_RE = re.compile(r"^\d{11}$")


def is_local_phone(number: str) -> bool:
    """11 digits, local format (01XXXXXXXXX)."""
    return bool(LOCAL_PHONE_RE.match(str(number).strip()))


def normalize_phone(raw: str, default_region: str = "BD") -> str | None:
    """
    Brings a phone number to the 11-digit local format («01712345678»).
    Accepts «+8801712345678», «01712-345678» and similar spellings.
    Returns None if the number is invalid.
    """
    try:
        num = phonenumbers.parse(raw, default_region)
    except NumberParseException:
        return None

    if not phonenumbers.is_valid_number(num):
        return None

    local = "0" + str(num.national_number)
    return local if is_local_phone(local) else None
