"""
Creator-facing routes: form CRUD, responses, uploaded files and analytics.

Every route needs a bearer token; forms are only visible to their owner.
"""
from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field, field_validator
from typing import List, Optional
import logging
from botocore.exceptions import BotoCoreError, ClientError
from sqlalchemy.orm import Session
from formcraft.core.auth import TokenData, get_current_user
from formcraft.core.cache import ViewCounter, get_view_counter
from formcraft.core.config import Settings, get_app_settings
from formcraft.core.database import get_db
from formcraft.models.orm import Form, FormFile
from formcraft.models.schemas import FormField, FormSchema, check_unique_ids
from formcraft.services import forms as store
from formcraft.services.fields import display_response
from formcraft.services.slugs import generate_form_slug, share_url
from formcraft.services.storage import BlobStore, get_blob_store

router = APIRouter()
logger = logging.getLogger(__name__)

class FormCreate(FormSchema):
    is_published: bool = True

class FormUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    fields: Optional[List[FormField]] = None
    is_published: Optional[bool] = None

    @field_validator("fields")
    @classmethod
    def unique_ids(cls, v):
        return v if v is None else check_unique_ids(v)

def form_out(form: Form, settings: Settings) -> dict:
    return {
        "id": form.id, "user_id": form.user_id, "title": form.title, "description": form.description,
        "fields": form.form_data or [], "is_published": form.is_published,
        "created_at": form.created_at, "updated_at": form.updated_at,
        "slug": generate_form_slug(form.title, form.id),
        "share_url": share_url(settings.PUBLIC_BASE_URL, form.title, form.id),
    }

def file_out(row: FormFile) -> dict:
    return {
        "id": row.id, "form_id": row.form_id, "response_id": row.response_id, "field_id": row.field_id,
        "name": row.file_name, "type": row.file_type, "size": row.file_size, "url": row.file_url,
        "created_at": row.created_at,
    }

def _remove_blob(blobs: BlobStore, row: FormFile) -> None:
    if row.storage_key and blobs.configured:
        blobs.remove(row.storage_key)

@router.post("/forms", status_code=201)
def create_form(payload: FormCreate, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
                settings: Settings = Depends(get_app_settings)):
    form = store.create_form(db, user.sub, payload, is_published=payload.is_published)
    return {"success": True, "form": form_out(form, settings)}

@router.get("/forms")
def list_forms(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
               settings: Settings = Depends(get_app_settings), counter: ViewCounter = Depends(get_view_counter)):
    forms = store.get_user_forms(db, user.sub)
    counts = store.response_counts(db, forms)
    views = counter.get_views(f.id for f in forms)
    return {"forms": [form_out(f, settings) | {"response_count": counts.get(f.id, 0), "views": views.get(f.id, 0)}
                      for f in forms]}

@router.get("/forms/{form_id}")
def read_form(form_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
              settings: Settings = Depends(get_app_settings)):
    return {"form": form_out(store.get_owned_form(db, form_id, user.sub), settings)}

@router.patch("/forms/{form_id}")
def edit_form(form_id: str, payload: FormUpdate, user: TokenData = Depends(get_current_user),
              db: Session = Depends(get_db), settings: Settings = Depends(get_app_settings)):
    form = store.get_owned_form(db, form_id, user.sub)
    updates = payload.model_dump(exclude_unset=True, exclude={"fields"})
    if payload.fields is not None:
        updates["fields"] = payload.fields
    form = store.update_form(db, form, updates)
    return {"success": True, "form": form_out(form, settings)}

@router.delete("/forms/{form_id}")
def remove_form(form_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
                blobs: BlobStore = Depends(get_blob_store), counter: ViewCounter = Depends(get_view_counter)):
    form = store.get_owned_form(db, form_id, user.sub)
    for row in store.get_form_files(db, form.id):
        try:
            _remove_blob(blobs, row)
        except (BotoCoreError, ClientError) as e:
            logger.error(f"Error removing stored file {row.storage_key}: {e}")
    store.delete_form(db, form.id)
    counter.drop(form.id)
    logger.info(f"Deleted form {form.id} for user {user.sub}")
    return {"success": True}

@router.get("/forms/{form_id}/responses")
def list_responses(form_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
                   settings: Settings = Depends(get_app_settings)):
    form = store.get_owned_form(db, form_id, user.sub)
    fields = store.form_fields(form)
    responses = store.get_form_responses(db, form.id)
    return {
        "form": form_out(form, settings),
        "responses": [{"id": r.id, "created_at": r.created_at, "data": r.response_data,
                       "display": display_response(fields, r.response_data or {})} for r in responses],
    }

@router.get("/forms/{form_id}/files")
def list_files(form_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db)):
    form = store.get_owned_form(db, form_id, user.sub)
    return {"files": [file_out(r) for r in store.get_form_files(db, form.id)]}

@router.delete("/files/{file_id}")
def remove_file(file_id: str, user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
                blobs: BlobStore = Depends(get_blob_store)):
    row = store.get_file(db, file_id)
    store.get_owned_form(db, row.form_id, user.sub)
    try:
        _remove_blob(blobs, row)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Error removing stored file {row.storage_key}: {e}")
        raise store.StoreError("Failed to delete file from storage") from e
    store.delete_file(db, row)
    return {"success": True}

@router.get("/analytics")
def analytics(user: TokenData = Depends(get_current_user), db: Session = Depends(get_db),
              counter: ViewCounter = Depends(get_view_counter)):
    forms = store.get_user_forms(db, user.sub)
    views = counter.get_views(f.id for f in forms)
    counts = store.response_counts(db, forms)
    row = store.refresh_user_analytics(db, user.sub, views)
    return {
        "analytics": {
            "total_forms": row.total_forms, "total_responses": row.total_responses,
            "total_views": row.total_views, "last_activity": row.last_activity,
        },
        "forms": [{"id": f.id, "title": f.title, "responses": counts.get(f.id, 0), "views": views.get(f.id, 0)}
                  for f in forms],
    }
