"""
Verification Module
===================

Bounded Context for one-time email verification codes.

Responsibilities:
- Issue short-lived six-digit codes per (email, verification type)
- Verify submitted codes with a bounded number of wrong attempts
- Supersede older codes when a new one is issued
- Refuse blacklisted addresses and excessive issuance
- Report verification activity

Endpoints:
- POST /verification/codes, /verification/verify, /verification/resend
- GET /verification/active, /verification/history, /verification/statistics
"""

__version__ = "1.0.0"
