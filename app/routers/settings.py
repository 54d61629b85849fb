# app/routers/settings.py
from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..db import get_db
from ..services.features import get_features

router = APIRouter(tags=["settings"])


# Публичные флаги: фронт решает, что показывать
@router.get("/api/settings/features")
def api_public_features(db: Session = Depends(get_db)):
    return {"ok": True, "features": get_features(db)}
