from sqlalchemy import Column, Integer, String, Text, DateTime

from .base import Base
from ..utils.clock import utcnow


class Setting(Base):
    __tablename__ = "settings"

    id = Column(Integer, primary_key=True)
    setting_key = Column(String(100), unique=True, nullable=False, index=True)
    value = Column(Text, nullable=True)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)
