"""
Domain models for AmoCRM token persistence.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional

from pydantic import BaseModel, Field


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class TokenRecord(BaseModel):
    """Represents the credential pair stored for one AmoCRM account."""

    access_token: str = Field(..., max_length=1000)
    refresh_token: str = Field(..., max_length=1000)
    base_domain: Optional[str] = Field(
        None, description="Account host the tokens were issued for."
    )
    expires_at: datetime
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def is_expired(
        self,
        now: Optional[datetime] = None,
        margin: timedelta = timedelta(0),
    ) -> bool:
        """Return True once the access token is at or past its expiry."""
        current = _as_utc(now) if now is not None else _utcnow()
        return _as_utc(self.expires_at) <= current + margin


__all__ = ["TokenRecord"]
