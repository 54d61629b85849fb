from __future__ import annotations

import enum

from sqlalchemy import (
    Column, Integer, String, Text, Boolean, DateTime, ForeignKey, Enum, Numeric, Index
)
from sqlalchemy.orm import relationship

from .base import Base
from ..utils.clock import utcnow
from ..utils.documents import load_images, load_contact


class ListingStatus(str, enum.Enum):
    PENDING  = "pending"    # на модерации
    APPROVED = "approved"
    REJECTED = "rejected"


class VehicleCondition(str, enum.Enum):
    USED        = "USED"
    BRANDNEW    = "BRANDNEW"
    REFURBISHED = "REFURBISHED"


class Vehicle(Base):
    __tablename__ = "vehicles"
    __table_args__ = (
        Index("ix_vehicles_status_created", "status", "created_at"),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)

    title = Column(String(200), nullable=False)
    brand = Column(String(100), nullable=False)
    model = Column(String(100), nullable=False)
    year = Column(Integer, nullable=False)
    price = Column(Numeric(12, 2), nullable=False)
    type = Column(String(50), nullable=False, default="car")
    fuel_type = Column(String(50), nullable=False, default="petrol")
    transmission = Column(String(50), nullable=False, default="manual")
    condition = Column(String(20), nullable=False, default=VehicleCondition.USED.value)
    mileage = Column(Integer, nullable=False, default=0)
    description = Column(Text, nullable=False)

    images = Column(Text, nullable=False, default="[]")          # JSON-массив URL
    contact_info = Column(Text, nullable=False, default="{}")    # JSON {phone, email, location}

    status = Column(Enum(ListingStatus), nullable=False, default=ListingStatus.PENDING, index=True)
    is_premium = Column(Boolean, nullable=False, default=False)  # фиксируется при создании
    approved_at = Column(DateTime, nullable=True)                # первое одобрение, дальше не меняется

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    owner = relationship("User", lazy="joined")

    @property
    def image_list(self) -> list[str]:
        return load_images(self.images)

    @property
    def contact(self) -> dict[str, str]:
        return load_contact(self.contact_info)


class VehicleImage(Base):
    __tablename__ = "vehicle_images"

    id = Column(Integer, primary_key=True)
    vehicle_id = Column(Integer, ForeignKey("vehicles.id"), nullable=False, index=True)
    image_data = Column(Text, nullable=False)
    file_name = Column(String(255), nullable=True)
    mime_type = Column(String(100), nullable=True)
    file_size = Column(Integer, nullable=True)
    sort_order = Column(Integer, nullable=False, default=0)
    uploaded_at = Column(DateTime, nullable=False, default=utcnow)
