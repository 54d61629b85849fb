import uuid

from sqlalchemy import Column, String, Integer, DateTime, ForeignKey, UniqueConstraint

from .base import Base
from ..utils.clock import utcnow


class Favorite(Base):
    __tablename__ = "favorites"
    __table_args__ = (UniqueConstraint("user_id", "vehicle_id", name="uq_favorite_user_vehicle"),)

    id = Column(String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
