"""
Notification Value Objects
==========================

Immutable value objects for the notification domain.

Templates are cached and shared between concurrent deliveries, so they are
frozen; rendering always produces a new RenderedMessage.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Mapping, Optional

from pydantic import BaseModel, Field


@dataclass(frozen=True)
class EmailTemplate:
    """A named subject/body pair with {Key} placeholders."""
    name: str
    subject: str
    body: str

    def render(self, data: Mapping[str, object]) -> "RenderedMessage":
        """
        Literal {Key} substitution in subject and body.

        Keys absent from the template are ignored; placeholders absent from
        data are left as they are.
        """
        subject = self.subject
        body = self.body
        for key, value in data.items():
            placeholder = "{" + str(key) + "}"
            text = "" if value is None else str(value)
            subject = subject.replace(placeholder, text)
            body = body.replace(placeholder, text)
        return RenderedMessage(subject=subject, body=body)


@dataclass(frozen=True)
class RenderedMessage:
    subject: str
    body: str


class RetryPolicy(BaseModel):
    """
    Delivery retry schedule.

    The n-th failed attempt waits min(base * 2**(n-1), max) seconds before
    the request becomes due again. A base of 0 retries on the next drain.
    """
    max_retries: int = Field(default=3, ge=1)
    backoff_seconds: float = Field(default=30.0, ge=0)
    backoff_max_seconds: float = Field(default=900.0, ge=0)

    def delay_for(self, retry_count: int) -> float:
        if self.backoff_seconds <= 0 or retry_count <= 0:
            return 0.0
        delay = self.backoff_seconds * (2 ** (retry_count - 1))
        return min(delay, self.backoff_max_seconds)

    def next_attempt_at(self, now: datetime, retry_count: int) -> Optional[datetime]:
        delay = self.delay_for(retry_count)
        if delay == 0:
            return None
        return now + timedelta(seconds=delay)
