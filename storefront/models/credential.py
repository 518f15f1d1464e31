"""
Cached carrier credentials

One row per carrier holding the current bearer token and its expiry, shared
by every process that talks to the carrier.
"""
from sqlalchemy import Column, String, DateTime, Text
from datetime import datetime
from storefront.models.base import Base


class CachedCredential(Base):
    __tablename__ = "api_tokens"

    carrier = Column(String, primary_key=True)
    token = Column(Text, nullable=False)
    expires_at = Column(DateTime, nullable=False)
    last_updated = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
