"""
Verification Interfaces Layer
=============================

Interface adapters (controllers) for the verification module.

This is the outermost layer - handles HTTP requests/responses and
delegates to application services.
"""

from src.verification.interfaces.controllers import verification_router

__all__ = ["verification_router"]
