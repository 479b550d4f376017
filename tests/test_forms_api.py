import pytest
import uuid
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from formcraft.models.orm import FormFile, FormResponse
from formcraft.services import forms as store

FIELDS = [
    {"id": "name", "type": "text", "label": "Name", "required": True},
    {"id": "email", "type": "email", "label": "Email", "required": True},
    {"id": "stars", "type": "rating", "label": "Rating", "required": False, "max": 5, "rating_type": "stars"},
    {"id": "cv", "type": "file", "label": "CV", "required": False, "accept": ".pdf"},
]

def test_health(client):
    r = client.get("/health"); assert r.status_code == 200 and r.json()["status"] == "ok"

def test_create_returns_slug_and_share_url(make_form):
    form = make_form(FIELDS)
    assert form["slug"] == f"job-application-form-{form['id']}"
    assert form["share_url"] == f"http://share.test/forms/{form['slug']}"

def test_fields_round_trip_in_order(client, auth, make_form):
    form = make_form(FIELDS)
    r = client.get(f"/api/forms/{form['id']}", headers=auth()); assert r.status_code == 200
    assert r.json()["form"]["fields"] == FIELDS

def test_unknown_field_kind_rejected(client, auth):
    body = {"title": "Bad", "fields": [{"id": "x", "type": "hologram", "label": "X"}]}
    r = client.post("/api/forms", json=body, headers=auth()); assert r.status_code == 422
    assert r.json()["error"] == "Validation error"

def test_duplicate_field_ids_rejected(client, auth):
    body = {"title": "Bad", "fields": [FIELDS[0], FIELDS[0]]}
    assert client.post("/api/forms", json=body, headers=auth()).status_code == 422

def test_requires_token(client):
    assert client.get("/api/forms").status_code in (401, 403)
    r = client.get("/api/forms", headers={"Authorization": "Bearer nope"}); assert r.status_code == 401

def test_list_has_counts_and_views(client, auth, make_form):
    form = make_form(FIELDS)
    make_form(title="Other", user_id="bob")
    client.post(f"/forms/{form['slug']}/responses", json={"data": {"name": "Ada", "email": "ada@formcraft.io"}})
    client.get(f"/forms/{form['slug']}")
    r = client.get("/api/forms", headers=auth()); assert r.status_code == 200
    forms = r.json()["forms"]
    assert [f["id"] for f in forms] == [form["id"]]
    assert forms[0]["response_count"] == 1 and forms[0]["views"] == 1

def test_response_count_failure_defaults_to_zero(client, auth, make_form, monkeypatch):
    make_form(FIELDS)
    def boom(db, form_id): raise SQLAlchemyError("count failed")
    monkeypatch.setattr(store, "count_form_responses", boom)
    r = client.get("/api/forms", headers=auth()); assert r.status_code == 200
    assert r.json()["forms"][0]["response_count"] == 0

def test_update_form(client, auth, make_form):
    form = make_form(FIELDS)
    r = client.patch(f"/api/forms/{form['id']}", json={"title": "Renamed", "fields": FIELDS[:1], "is_published": False},
                     headers=auth())
    assert r.status_code == 200
    out = r.json()["form"]
    assert out["title"] == "Renamed" and out["fields"] == FIELDS[:1] and out["is_published"] is False
    assert out["description"] == "Apply here"

def test_not_owner_and_not_found(client, auth, make_form):
    form = make_form(FIELDS)
    r = client.delete(f"/api/forms/{form['id']}", headers=auth("mallory")); assert r.status_code == 403
    r = client.patch(f"/api/forms/{form['id']}", json={"title": "x"}, headers=auth("mallory")); assert r.status_code == 403
    r = client.delete(f"/api/forms/{uuid.uuid4()}", headers=auth()); assert r.status_code == 404
    assert r.json() == {"error": "Form not found"}
    assert client.get("/api/forms/not-a-uuid", headers=auth()).status_code == 404

def test_delete_cascades_responses(client, auth, make_form, db):
    form = make_form(FIELDS)
    for name in ("Ada", "Grace"):
        client.post(f"/forms/{form['id']}/responses", json={"data": {"name": name, "email": "x@formcraft.io"}})
    r = client.delete(f"/api/forms/{form['id']}", headers=auth()); assert r.status_code == 200
    assert db.scalar(select(func.count()).select_from(FormResponse)) == 0
    assert client.get(f"/api/forms/{form['id']}", headers=auth()).status_code == 404

def test_delete_survives_file_metadata_failure(client, auth, make_form, db, monkeypatch):
    form = make_form(FIELDS)
    client.post(f"/forms/{form['id']}/responses", json={"data": {"name": "Ada", "email": "x@formcraft.io"}})
    def boom(db, form_id): raise SQLAlchemyError("files table locked")
    monkeypatch.setattr(store, "delete_form_files", boom)
    r = client.delete(f"/api/forms/{form['id']}", headers=auth()); assert r.status_code == 200
    assert db.scalar(select(func.count()).select_from(FormResponse)) == 0

def test_delete_fails_when_responses_cannot_be_removed(client, auth, make_form, monkeypatch):
    form = make_form(FIELDS)
    def boom(*a, **kw): raise SQLAlchemyError("responses locked")
    monkeypatch.setattr(store, "delete", boom)
    r = client.delete(f"/api/forms/{form['id']}", headers=auth()); assert r.status_code == 500
    assert r.json() == {"error": "Failed to delete form responses"}

def test_responses_listing_has_display(client, auth, make_form):
    form = make_form(FIELDS)
    client.post(f"/forms/{form['id']}/responses", json={"data": {"name": "Ada", "email": "ada@formcraft.io", "stars": 4}})
    r = client.get(f"/api/forms/{form['id']}/responses", headers=auth()); assert r.status_code == 200
    resp = r.json()["responses"][0]
    assert resp["data"] == {"name": "Ada", "email": "ada@formcraft.io", "stars": 4}
    shown = {d["field_id"]: d["display"] for d in resp["display"]}
    assert shown["stars"]["text"] == "(4/5)" and shown["cv"]["kind"] == "empty"

def test_files_listing_and_delete(client, auth, make_form, db):
    form = make_form(FIELDS)
    up = client.post(f"/forms/{form['slug']}/files", data={"field_id": "cv"},
                     files={"file": ("cv.pdf", b"%PDF-1.4", "application/pdf")})
    assert up.status_code == 201
    r = client.get(f"/api/forms/{form['id']}/files", headers=auth()); assert r.status_code == 200
    files = r.json()["files"]
    assert [f["name"] for f in files] == ["cv.pdf"] and files[0]["url"].startswith("data:application/pdf;base64,")
    assert client.delete(f"/api/files/{files[0]['id']}", headers=auth("mallory")).status_code == 403
    assert client.delete(f"/api/files/{files[0]['id']}", headers=auth()).status_code == 200
    assert db.scalar(select(func.count()).select_from(FormFile)) == 0
    assert client.delete(f"/api/files/{files[0]['id']}", headers=auth()).status_code == 404

def test_analytics_refresh(client, auth, make_form):
    a = make_form(FIELDS); b = make_form(title="Second")
    client.post(f"/forms/{a['id']}/responses", json={"data": {"name": "Ada", "email": "ada@formcraft.io"}})
    client.post(f"/forms/{b['id']}/responses", json={"data": {}})
    for _ in range(3): client.get(f"/forms/{a['slug']}")
    client.get(f"/form/{b['id']}")
    r = client.get("/api/analytics", headers=auth()); assert r.status_code == 200
    stats = r.json()["analytics"]
    assert (stats["total_forms"], stats["total_responses"], stats["total_views"]) == (2, 2, 4)
    assert r.json()["analytics"]["last_activity"] is not None

def test_expired_token(client, settings):
    from formcraft.core.auth import create_token
    token = create_token("alice", settings, ttl_minutes=-1)
    r = client.get("/api/forms", headers={"Authorization": f"Bearer {token}"}); assert r.status_code == 401
    assert r.json() == {"error": "Invalid or expired token"}

def test_gateway_lookups(db, make_form):
    draft = make_form(title="Draft", is_published=False)
    live = make_form(title="Live")
    assert store.get_published_form(db, live["id"]).title == "Live"
    with pytest.raises(store.FormNotFoundError):
        store.get_published_form(db, draft["id"])
    assert store.resolve_form(db, draft["slug"], viewer_id="alice").id == draft["id"]
    assert store.get_user_analytics(db, "alice") is None
    store.refresh_user_analytics(db, "alice")
    assert store.get_user_analytics(db, "alice").total_forms == 2
