from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from intake.database import get_db
from intake.dependencies import get_call_context
from intake.schemas.settings import DuplicateDetectionSettings
from intake.services.duplicate_service import load_detection_settings, save_detection_settings

router = APIRouter(
    prefix="/settings",
    tags=["settings"],
    dependencies=[Depends(get_call_context)],
)


@router.get("/duplicate-detection", response_model=DuplicateDetectionSettings)
def get_duplicate_settings(db: Session = Depends(get_db)):
    return load_detection_settings(db)


@router.put("/duplicate-detection", response_model=DuplicateDetectionSettings)
def update_duplicate_settings(req: DuplicateDetectionSettings, db: Session = Depends(get_db)):
    return save_detection_settings(db, req)
