"""
Notifications Module
====================

Bounded Context for asynchronous email delivery.

Responsibilities:
- Queue outgoing messages without blocking request handlers
- Render named templates with per-message data
- Refuse blacklisted recipients
- Retry transient transport failures with exponential backoff
- Track per-message outcomes and aggregate delivery statistics

Endpoints:
- POST /notifications, /notifications/bulk, /notifications/process
- GET /notifications/statistics, /notifications/tracking/{tracking_id}
"""

__version__ = "1.0.0"
