"""
Respondent-facing routes reached through share links.
"""
from fastapi import APIRouter, Depends, File, Form as FormParam, HTTPException, UploadFile
from pydantic import BaseModel, Field
from typing import Any, Dict, Optional
import logging
from sqlalchemy.orm import Session
from formcraft.core.auth import TokenData, get_optional_user
from formcraft.core.cache import ViewCounter, get_view_counter
from formcraft.core.config import Settings, get_app_settings
from formcraft.core.database import get_db
from formcraft.models.orm import Form
from formcraft.models.schemas import FieldKind
from formcraft.services import forms as store
from formcraft.services.fields import apply_update, initial_values, render_form, validate_response
from formcraft.services.slugs import generate_form_slug
from formcraft.services.storage import BlobStore, get_blob_store, store_upload

router = APIRouter()
logger = logging.getLogger(__name__)

UPLOAD_KINDS = {FieldKind.FILE, FieldKind.IMAGE, FieldKind.AUDIO}

class ResponseIn(BaseModel):
    data: Dict[str, Any] = Field(default_factory=dict)

def _viewer(user: Optional[TokenData]) -> Optional[str]:
    return user.sub if user else None

def public_payload(form: Form) -> dict:
    fields = store.form_fields(form)
    return {
        "form": {"id": form.id, "title": form.title, "description": form.description,
                 "fields": form.form_data or [], "is_published": form.is_published,
                 "slug": generate_form_slug(form.title, form.id)},
        "widgets": render_form(fields),
        "initial_values": initial_values(fields),
    }

def _show(identifier: str, db: Session, user: Optional[TokenData], counter: ViewCounter) -> dict:
    form = store.resolve_form(db, identifier, _viewer(user))
    counter.bump_view(form.id)
    return public_payload(form)

@router.get("/forms/{slug}")
def show_form(slug: str, db: Session = Depends(get_db), user: Optional[TokenData] = Depends(get_optional_user),
              counter: ViewCounter = Depends(get_view_counter)):
    return _show(slug, db, user, counter)

@router.get("/form/{form_id}")
def show_form_legacy(form_id: str, db: Session = Depends(get_db),
                     user: Optional[TokenData] = Depends(get_optional_user),
                     counter: ViewCounter = Depends(get_view_counter)):
    return _show(form_id, db, user, counter)

@router.post("/forms/{slug}/responses", status_code=201)
def submit_response(slug: str, payload: ResponseIn, db: Session = Depends(get_db),
                    user: Optional[TokenData] = Depends(get_optional_user)):
    form = store.resolve_form(db, slug, _viewer(user))
    fields = store.form_fields(form)
    # unknown keys are dropped; known ones are coerced to their stored shape
    answers = {f.id: apply_update(f, payload.data[f.id]) for f in fields if f.id in payload.data}
    errors = validate_response(fields, answers)
    if errors:
        raise HTTPException(400, detail={"error": "Please fill in all required fields", "details": errors})
    resp = store.submit_form_response(db, form.id, answers)
    logger.info(f"Stored response {resp.id} for form {form.id}")
    return {"success": True, "id": resp.id}

@router.post("/forms/{slug}/files", status_code=201)
def upload_file(slug: str, field_id: str = FormParam(...), response_id: Optional[str] = FormParam(None),
                file: UploadFile = File(...), db: Session = Depends(get_db),
                user: Optional[TokenData] = Depends(get_optional_user),
                blobs: BlobStore = Depends(get_blob_store), settings: Settings = Depends(get_app_settings)):
    form = store.resolve_form(db, slug, _viewer(user))
    field = next((f for f in store.form_fields(form) if f.id == field_id), None)
    if field is None:
        raise HTTPException(400, "Unknown field")
    if field.type not in UPLOAD_KINDS:
        raise HTTPException(400, "Field does not accept uploads")
    if response_id is not None and store.get_form_response(db, form.id, response_id) is None:
        raise HTTPException(400, "Unknown response")
    data = file.file.read(settings.MAX_UPLOAD_SIZE + 1)
    if not data:
        raise HTTPException(400, "Empty file")
    if len(data) > settings.MAX_UPLOAD_SIZE:
        raise HTTPException(413, "File too large")
    row = store_upload(db, blobs, form_id=form.id, field_id=field.id, filename=file.filename or "upload",
                       content_type=file.content_type or "application/octet-stream", data=data,
                       response_id=response_id.lower() if response_id else None)
    return {"id": row.id, "name": row.file_name, "url": row.file_url, "type": row.file_type,
            "size": row.file_size, "field_id": row.field_id}
