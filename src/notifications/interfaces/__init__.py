"""
Notification Interfaces Layer
=============================

Interface adapters (controllers) for the notifications module.
"""

from src.notifications.interfaces.controllers import notifications_router

__all__ = ["notifications_router"]
