"""
Verification Value Objects
==========================

Immutable value objects and stateless helpers for the verification domain.
"""

import secrets
from dataclasses import dataclass
from datetime import datetime

from pydantic import BaseModel, Field

from src.config import (
    VERIFICATION_CODE_LENGTH,
    VERIFICATION_TYPE_DISPLAY_NAMES,
    VerificationType,
)


class CodeGenerator:
    """
    Cryptographically random numeric codes.

    Codes are not unique across records; validation is always scoped by
    (email, type, code).
    """

    @staticmethod
    def generate(length: int = VERIFICATION_CODE_LENGTH) -> str:
        return "".join(str(secrets.randbelow(10)) for _ in range(length))

    @staticmethod
    def is_valid_format(code: str, length: int = VERIFICATION_CODE_LENGTH) -> bool:
        if not code or len(code) != length:
            return False
        # str.isdigit() accepts non-ASCII digits
        return all("0" <= ch <= "9" for ch in code)


class VerificationPolicy(BaseModel):
    """
    Issuance rules for verification codes.

    This is a value object - defined by its attributes.
    """
    expiry_minutes: int = Field(default=15, ge=1, description="Default code lifetime")
    max_retries: int = Field(default=3, ge=1, description="Default wrong-code attempts")
    daily_limit: int = Field(default=10, ge=1, description="Codes per address per day")
    resend_cooldown_seconds: int = Field(
        default=0,
        ge=0,
        description="Minimum seconds between codes for the same address and type"
    )


@dataclass(frozen=True)
class VerificationEmail:
    """Subject and HTML body telling the user their code."""

    subject: str
    body: str

    _SUBJECTS = {
        VerificationType.CUSTOMER_REGISTRATION: "Service Desk - Confirm your registration",
        VerificationType.USER_CREATION: "Service Desk - Confirm account creation",
        VerificationType.PASSWORD_RESET: "Service Desk - Password reset",
        VerificationType.EMAIL_CHANGE: "Service Desk - Confirm your new email address",
        VerificationType.ACCOUNT_ACTIVATION: "Service Desk - Activate your account",
    }

    @classmethod
    def build(
        cls,
        type: VerificationType,
        code: str,
        expires_at: datetime,
        now: datetime,
        max_retries: int,
    ) -> "VerificationEmail":
        subject = cls._SUBJECTS.get(type, "Service Desk - Email verification")
        display_name = VERIFICATION_TYPE_DISPLAY_NAMES.get(type, type.value)
        expiry_minutes = max(0, int((expires_at - now).total_seconds() // 60))

        body = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"><title>Email verification</title></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6; color: #333;">
  <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
    <h2 style="color: #007bff;">Service Desk</h2>
    <p>Your verification code for <strong>{display_name}</strong> is:</p>
    <div style="font-size: 32px; font-weight: bold; letter-spacing: 5px; text-align: center;
                padding: 20px; border: 2px dashed #007bff;">{code}</div>
    <ul>
      <li>The code is valid for <strong>{expiry_minutes} minutes</strong>.</li>
      <li>You can try at most <strong>{max_retries} times</strong>.</li>
      <li>Never share this code with anyone.</li>
    </ul>
    <p style="color: #dc3545;">If you did not request this, ignore this email.</p>
  </div>
</body>
</html>"""
        return cls(subject=subject, body=body)
