from __future__ import annotations

from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from .config import settings
from .models.base import Base

# ---------- Engine / Session ----------
# Строка берётся из настроек (например из .env через app.config.settings)
DATABASE_URL = settings.DATABASE_URL

if DATABASE_URL and DATABASE_URL.startswith("sqlite"):
    # Для sqlite важно указать check_same_thread=False для многопоточного доступа.
    # In-memory база живёт в одном соединении, поэтому StaticPool.
    engine_kwargs = {"connect_args": {"check_same_thread": False}, "future": True}
    if DATABASE_URL in ("sqlite://", "sqlite:///:memory:"):
        engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(DATABASE_URL, **engine_kwargs)
else:
    engine = create_engine(
        DATABASE_URL,
        pool_pre_ping=True,
        future=True,
    )

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
    expire_on_commit=False,
    future=True,
)


def init_db() -> None:
    # Импорт моделей, чтобы при create_all были зарегистрированы все таблицы
    from .models import user, vehicle, subscription, favorite, setting  # noqa: F401

    Base.metadata.create_all(bind=engine)


# ---------- Dependency ----------
def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()
