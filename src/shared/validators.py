"""
Shared validators used by more than one bounded context.
"""

import re

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def is_valid_email_address(address: str) -> bool:
    """Syntactic address check; says nothing about deliverability."""
    if not address or not address.strip():
        return False
    return EMAIL_PATTERN.match(address.strip()) is not None


def normalize_email(address: str) -> str:
    return address.strip().lower()
