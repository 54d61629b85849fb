from __future__ import annotations

import enum

from sqlalchemy import (
    Column, Integer, String, Boolean, Text, DateTime, ForeignKey, Enum, Numeric, UniqueConstraint
)
from sqlalchemy.orm import relationship

from .base import Base
from ..utils.clock import utcnow
from ..utils.documents import load_features


class SubscriptionStatus(str, enum.Enum):
    ACTIVE    = "active"
    CANCELLED = "cancelled"
    # "expired" в базе не хранится, вычисляется по end_date


class Subscription(Base):
    __tablename__ = "subscriptions"

    id = Column(String(64), primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    plan_type = Column(String(20), nullable=False)
    status = Column(Enum(SubscriptionStatus), nullable=True, default=SubscriptionStatus.ACTIVE)  # null = активна

    start_date = Column(DateTime, nullable=False)
    end_date = Column(DateTime, nullable=False)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    post_count = Column(Integer, nullable=False, default=0)   # остаток премиум-публикаций
    payment_method = Column(String(50), nullable=True)
    transaction_id = Column(String(100), nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
    cancelled_at = Column(DateTime, nullable=True)

    owner = relationship("User")


class SubscriptionPlan(Base):
    __tablename__ = "subscription_plans"
    __table_args__ = (UniqueConstraint("name", "plan_type", name="uq_plan_name_type"),)

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    plan_type = Column(String(20), nullable=False, index=True)
    price = Column(Numeric(12, 2), nullable=False, default=0)
    post_count = Column(Integer, nullable=False, default=0)
    features = Column(Text, nullable=False, default="[]")    # JSON-массив строк
    is_active = Column(Boolean, nullable=False, default=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "name": self.name,
            "plan_type": self.plan_type,
            "price": float(self.price or 0),
            "post_count": self.post_count,
            "features": load_features(self.features),
            "is_active": bool(self.is_active),
        }
