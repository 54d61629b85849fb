import uuid

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, UniqueConstraint

from .base import Base
from ..utils.clock import utcnow

ROLE_USER = "user"
ROLE_ADMIN = "admin"
ROLE_SUPERADMIN = "superadmin"
ROLES = (ROLE_USER, ROLE_ADMIN, ROLE_SUPERADMIN)
ADMIN_ROLES = (ROLE_ADMIN, ROLE_SUPERADMIN)


def _new_id() -> str:
    return str(uuid.uuid4())


class User(Base):
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=_new_id)
    email = Column(String(255), unique=True, index=True, nullable=False)   # храним в нижнем регистре
    name = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=True)
    role = Column(String(20), nullable=False, default=ROLE_USER)          # user / admin / superadmin
    is_blocked = Column(Boolean, nullable=False, default=False)
    last_login = Column(DateTime, nullable=True)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_superadmin(self) -> bool:
        return self.role == ROLE_SUPERADMIN


class AdminPermission(Base):
    __tablename__ = "admin_permissions"
    __table_args__ = (UniqueConstraint("admin_id", "feature", name="uq_admin_permission_feature"),)

    id = Column(Integer, primary_key=True)
    admin_id = Column(String(36), ForeignKey("users.id"), nullable=False, index=True)
    feature = Column(String(100), nullable=False)

    can_access = Column(Boolean, nullable=False, default=False)
    can_create = Column(Boolean, nullable=False, default=False)
    can_edit = Column(Boolean, nullable=False, default=False)
    can_delete = Column(Boolean, nullable=False, default=False)

    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    def to_dict(self):
        return {
            "id": self.id,
            "admin_id": self.admin_id,
            "feature": self.feature,
            "can_access": bool(self.can_access),
            "can_create": bool(self.can_create),
            "can_edit": bool(self.can_edit),
            "can_delete": bool(self.can_delete),
        }
