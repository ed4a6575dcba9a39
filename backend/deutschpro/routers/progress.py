from __future__ import annotations

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..db import get_db
from ..errors import SnapshotVersionError
from ..progress import level_overview
from ..schemas import UserProgress
from ..store import export_snapshot, import_snapshot, load_progress


router = APIRouter(prefix="/progress", tags=["progress"])


@router.get("", response_model=UserProgress)
async def get_progress(db: Session = Depends(get_db)):
    return load_progress(db)


@router.get("/levels")
async def levels(db: Session = Depends(get_db)) -> List[Dict[str, Any]]:
    return level_overview(load_progress(db))


@router.get("/export")
async def export(db: Session = Depends(get_db)):
    snapshot = export_snapshot(db)
    return JSONResponse(
        content=snapshot.model_dump(mode="json", by_alias=True),
        headers={"Content-Disposition": 'attachment; filename="deutschpro-backup.json"'},
    )


@router.post("/import", response_model=UserProgress)
async def import_(data: Dict[str, Any] = Body(...), db: Session = Depends(get_db)):
    try:
        snapshot = import_snapshot(db, data)
    except SnapshotVersionError as exc:
        raise HTTPException(status_code=400, detail=str(exc))
    except ValidationError:
        raise HTTPException(status_code=422, detail="Backup file is not a valid DeutschPro export.")
    return snapshot.progress
