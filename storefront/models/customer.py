"""Customer profile and saved address book"""
from sqlalchemy import Column, Integer, String, DateTime, JSON, ForeignKey, UniqueConstraint
from datetime import datetime
from storefront.models.base import Base


class CustomerProfile(Base):
    """
    Storefront account keyed by the identity provider's user id.

    `address` is the denormalised default address written when a customer
    ticks "save for future" at checkout.
    """
    __tablename__ = "customer_profiles"

    user_id = Column(String, primary_key=True)
    email = Column(String, index=True, nullable=True)
    display_name = Column(String, nullable=True)
    role = Column(String, nullable=True)
    address = Column(JSON, nullable=True)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class SavedAddress(Base):
    __tablename__ = "saved_addresses"
    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_saved_address_user_slug"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(String, ForeignKey("customer_profiles.user_id"), index=True, nullable=False)
    slug = Column(String, nullable=False)
    label = Column(String, nullable=False)
    address = Column(JSON, nullable=False)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
