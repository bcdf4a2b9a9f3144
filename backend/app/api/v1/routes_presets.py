from fastapi import APIRouter, Depends, HTTPException
from pydantic import ValidationError
from sqlalchemy.orm import Session

from app.core.db import get_db
from app.core.errors import ok
from app.schemas.caption import (
    CaptionPresetCreate,
    CaptionPresetListResponse,
    CaptionPresetOut,
    CaptionPresetResponse,
)
from app.services.caption_presets import (
    create_caption_preset,
    get_caption_preset,
    list_caption_presets,
)

router = APIRouter()


@router.post("/caption/presets", response_model=CaptionPresetResponse)
def create_preset(body: CaptionPresetCreate, db: Session = Depends(get_db)):
    """
    Save a named caption style. Only whitelisted style keys are stored;
    rasters, text and geometry in `style` are dropped.
    """
    try:
        preset = create_caption_preset(db, body.name, body.style)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=f"Invalid style: {e.errors(include_url=False)}")
    return ok(CaptionPresetOut.model_validate(preset))


@router.get("/caption/presets", response_model=CaptionPresetListResponse)
def list_presets(db: Session = Depends(get_db)):
    presets = list_caption_presets(db)
    return ok([CaptionPresetOut.model_validate(p) for p in presets])


@router.get("/caption/presets/{preset_id}", response_model=CaptionPresetResponse)
def get_preset(preset_id: str, db: Session = Depends(get_db)):
    preset = get_caption_preset(db, preset_id)
    if preset is None:
        raise HTTPException(status_code=404, detail="Preset not found")
    return ok(CaptionPresetOut.model_validate(preset))
