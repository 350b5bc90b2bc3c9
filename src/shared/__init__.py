"""
Shared Kernel Module
====================

Shared infrastructure used across all bounded contexts
(Verification and Notifications).

Architecture Pattern: Modular Monolith
- Each module (verification, notifications) is a bounded context
- Shared kernel contains only generic infrastructure

DO NOT add business logic from Verification or Notifications to shared kernel.
"""

__version__ = "1.0.0"
