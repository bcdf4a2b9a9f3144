from typing import Any, Dict, Optional
from sqlalchemy.orm import Session

from app.core.logging import get_logger
from app.models.caption_preset import CaptionPreset
from app.schemas.caption import CaptionStyle
from app.services.caption_style import extract_style_only

logger = get_logger(__name__)


def sanitize_preset_style(style: Any) -> Dict[str, Any]:
    """
    Whitelist and validate a style before it is persisted.

    Raises pydantic.ValidationError for out-of-range values.
    """
    allowed = extract_style_only(style)
    validated = CaptionStyle.model_validate(allowed).model_dump(exclude_none=True)
    # keep only keys the caller actually sent
    return {k: v for k, v in validated.items() if k in allowed}


def create_caption_preset(db: Session, name: str, style: Any) -> CaptionPreset:
    preset = CaptionPreset(name=name.strip(), style=sanitize_preset_style(style))
    db.add(preset)
    db.commit()
    db.refresh(preset)
    logger.info("Saved caption preset %s (%s) with %d style keys", preset.id, preset.name, len(preset.style))
    return preset


def list_caption_presets(db: Session) -> list[CaptionPreset]:
    return db.query(CaptionPreset).order_by(CaptionPreset.created_at.desc()).all()


def get_caption_preset(db: Session, preset_id: str) -> Optional[CaptionPreset]:
    return db.query(CaptionPreset).filter(CaptionPreset.id == preset_id).first()
