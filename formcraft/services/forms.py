"""
Forms, responses, analytics and file metadata over the relational store.

All functions take the request's SQLAlchemy session explicitly.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from sqlalchemy import select, delete, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from formcraft.models.orm import Form, FormResponse, UserAnalytics, FormFile
from formcraft.models.schemas import FormField, FormSchema
from formcraft.services.slugs import is_valid_uuid, extract_id_from_slug

logger = logging.getLogger(__name__)

class FormNotFoundError(Exception):
    pass

class FormPermissionError(Exception):
    pass

class StoreError(Exception):
    pass

def form_fields(form: Form) -> List[FormField]:
    return [FormField.model_validate(f) for f in (form.form_data or [])]

# ---------- forms ----------

def create_form(db: Session, user_id: str, schema: FormSchema, is_published: bool = True) -> Form:
    form = Form(
        user_id=user_id, title=schema.title, description=schema.description or "",
        form_data=[f.dump() for f in schema.fields], is_published=is_published,
    )
    db.add(form); db.commit(); db.refresh(form)
    logger.info(f"Created form {form.id} for user {user_id} with {len(schema.fields)} fields")
    return form

def get_form(db: Session, form_id: str) -> Form:
    form = db.get(Form, form_id.lower()) if is_valid_uuid(form_id) else None
    if not form:
        raise FormNotFoundError("Form not found")
    return form

def get_owned_form(db: Session, form_id: str, user_id: str) -> Form:
    form = get_form(db, form_id)
    if form.user_id != user_id:
        raise FormPermissionError("Unauthorized - you can only manage your own forms")
    return form

def get_published_form(db: Session, form_id: str) -> Form:
    form = get_form(db, form_id)
    if not form.is_published:
        raise FormNotFoundError("Form not found")
    return form

def resolve_form(db: Session, identifier: str, viewer_id: Optional[str] = None) -> Form:
    """Find a form by bare id or by slug; unpublished forms are visible to their owner only."""
    form_id = identifier if is_valid_uuid(identifier) else extract_id_from_slug(identifier)
    # ids are stored lower-case
    form = db.get(Form, form_id.lower()) if form_id else None
    if not form or not (form.is_published or form.user_id == viewer_id):
        logger.info(f"Form not found for identifier: {identifier}")
        raise FormNotFoundError("Form not found")
    return form

def get_user_forms(db: Session, user_id: str) -> List[Form]:
    stmt = select(Form).where(Form.user_id == user_id).order_by(Form.created_at.desc())
    return list(db.scalars(stmt).all())

def update_form(db: Session, form: Form, updates: Dict[str, Any]) -> Form:
    if "fields" in updates:
        fields = updates.pop("fields")
        form.form_data = [f.dump() if isinstance(f, FormField) else FormField.model_validate(f).dump()
                          for f in fields]
    for key in ("title", "description", "is_published"):
        if key in updates and updates[key] is not None:
            setattr(form, key, updates[key])
    form.updated_at = datetime.now(timezone.utc)
    db.commit(); db.refresh(form)
    return form

def delete_form(db: Session, form_id: str) -> None:
    """Files first (best effort), then responses, then the form."""
    try:
        removed = delete_form_files(db, form_id)
        logger.info(f"Deleted {removed} file records for form {form_id}")
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting form files for {form_id}: {e}")
    try:
        db.execute(delete(FormResponse).where(FormResponse.form_id == form_id)); db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting form responses for {form_id}: {e}")
        raise StoreError("Failed to delete form responses") from e
    try:
        db.execute(delete(Form).where(Form.id == form_id)); db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        logger.error(f"Error deleting form {form_id}: {e}")
        raise StoreError("Failed to delete form") from e

# ---------- responses ----------

def submit_form_response(db: Session, form_id: str, response_data: Dict[str, Any]) -> FormResponse:
    resp = FormResponse(form_id=form_id, response_data=response_data)
    db.add(resp); db.commit(); db.refresh(resp)
    return resp

def get_form_response(db: Session, form_id: str, response_id: str) -> Optional[FormResponse]:
    """A response only when it belongs to the given form."""
    resp = db.get(FormResponse, response_id.lower()) if is_valid_uuid(response_id) else None
    return resp if resp is not None and resp.form_id == form_id else None

def get_form_responses(db: Session, form_id: str) -> List[FormResponse]:
    stmt = select(FormResponse).where(FormResponse.form_id == form_id).order_by(FormResponse.created_at.desc())
    return list(db.scalars(stmt).all())

def count_form_responses(db: Session, form_id: str) -> int:
    return db.scalar(select(func.count()).select_from(FormResponse).where(FormResponse.form_id == form_id)) or 0

def response_counts(db: Session, forms: List[Form]) -> Dict[str, int]:
    counts = {}
    for form in forms:
        try:
            counts[form.id] = count_form_responses(db, form.id)
        except SQLAlchemyError as e:
            db.rollback()
            logger.error(f"Error loading responses for form {form.id}: {e}")
            counts[form.id] = 0
    return counts

# ---------- analytics ----------

def get_user_analytics(db: Session, user_id: str) -> Optional[UserAnalytics]:
    return db.get(UserAnalytics, user_id)

def create_or_update_user_analytics(db: Session, user_id: str, updates: Dict[str, int]) -> UserAnalytics:
    row = db.get(UserAnalytics, user_id)
    if row is None:
        row = UserAnalytics(user_id=user_id, total_forms=0, total_responses=0, total_views=0)
        db.add(row)
    for key, value in updates.items():
        setattr(row, key, value)
    row.last_activity = datetime.now(timezone.utc)
    db.commit(); db.refresh(row)
    return row

def refresh_user_analytics(db: Session, user_id: str, views_by_form: Optional[Dict[str, int]] = None) -> UserAnalytics:
    """Recount forms and responses; views come from the per-form view counters."""
    forms_count = db.scalar(select(func.count()).select_from(Form).where(Form.user_id == user_id)) or 0
    responses_count = db.scalar(
        select(func.count()).select_from(FormResponse).join(Form, Form.id == FormResponse.form_id)
        .where(Form.user_id == user_id)
    ) or 0
    updates = {"total_forms": forms_count, "total_responses": responses_count}
    if views_by_form is not None:
        updates["total_views"] = sum(views_by_form.values())
    return create_or_update_user_analytics(db, user_id, updates)

# ---------- files ----------

def record_form_file(db: Session, *, form_id: str, field_id: str, file_name: str, file_type: str,
                     file_size: int, file_url: str, storage_key: Optional[str] = None,
                     response_id: Optional[str] = None) -> FormFile:
    row = FormFile(form_id=form_id, response_id=response_id, field_id=field_id, file_name=file_name,
                   file_type=file_type, file_size=file_size, file_url=file_url, storage_key=storage_key)
    db.add(row); db.commit(); db.refresh(row)
    return row

def get_form_files(db: Session, form_id: str) -> List[FormFile]:
    stmt = select(FormFile).where(FormFile.form_id == form_id).order_by(FormFile.created_at.desc())
    return list(db.scalars(stmt).all())

def get_file(db: Session, file_id: str) -> FormFile:
    row = db.get(FormFile, file_id)
    if not row:
        raise FormNotFoundError("File not found")
    return row

def delete_form_files(db: Session, form_id: str) -> int:
    result = db.execute(delete(FormFile).where(FormFile.form_id == form_id))
    db.commit()
    return result.rowcount or 0

def delete_file(db: Session, row: FormFile) -> None:
    db.delete(row); db.commit()
