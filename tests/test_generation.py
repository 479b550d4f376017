import json
import openai
import pytest
from formcraft.services.generation import FormGenerator, GenerationError, GenerationNotConfigured

GENERATED = {
    "title": "Event Registration",
    "description": "Sign up for the meetup",
    "fields": [
        {"id": "name", "type": "text", "label": "Full name", "required": True},
        {"type": "email", "label": "Email", "required": True},
        {"id": "name", "type": "yesno", "label": "Vegetarian?"},
        {"id": "score", "type": "rating", "label": "Excitement", "max": 5, "rating_type": "hearts"},
    ],
}

def test_generate_text(client, openai_client):
    openai_client.chat.completions.content = json.dumps(GENERATED)
    r = client.post("/api/ai/generate-form", json={"description": "meetup signup", "type": "text"})
    assert r.status_code == 200, r.text
    data = r.json()["data"]
    assert r.json()["success"] is True and data["title"] == "Event Registration"
    assert [f["id"] for f in data["fields"]] == ["name", "field_2", "field_3", "score"]
    assert data["fields"][2]["required"] is False
    call = openai_client.chat.completions.calls[-1]
    assert call["model"] == "gpt-4o-mini" and call["response_format"] == {"type": "json_object"}
    assert call["messages"][1]["content"] == "Create a form for: meetup signup"

def test_generate_image_uses_vision_model(client, openai_client):
    openai_client.chat.completions.content = json.dumps(GENERATED)
    r = client.post("/api/ai/generate-form", json={"description": "paper form", "type": "image", "imageBase64": "AAAA"})
    assert r.status_code == 200
    call = openai_client.chat.completions.calls[-1]
    assert call["model"] == "gpt-4o"
    parts = call["messages"][1]["content"]
    assert parts[1] == {"type": "image_url", "image_url": {"url": "data:image/png;base64,AAAA"}}

def test_request_validation(client):
    r = client.post("/api/ai/generate-form", json={"type": "text"}); assert r.status_code == 400
    assert r.json() == {"error": "Description and type are required"}
    r = client.post("/api/ai/generate-form", json={"description": "x", "type": "image"}); assert r.status_code == 400
    assert r.json() == {"error": "Image data is required for image-based generation"}
    assert client.post("/api/ai/generate-form", json={"description": "x", "type": "audio"}).status_code == 400

def test_unknown_kind_in_output(client, openai_client):
    bad = {"title": "T", "fields": [{"id": "a", "type": "hologram", "label": "A"}]}
    openai_client.chat.completions.content = json.dumps(bad)
    r = client.post("/api/ai/generate-form", json={"description": "x", "type": "text"}); assert r.status_code == 500
    assert "hologram" in r.json()["details"]

def test_malformed_output(client, openai_client):
    openai_client.chat.completions.content = "sure! here is your form"
    r = client.post("/api/ai/generate-form", json={"description": "x", "type": "text"}); assert r.status_code == 500

def test_upstream_error(client, openai_client):
    openai_client.chat.completions.error = openai.OpenAIError("rate limited")
    r = client.post("/api/ai/generate-form", json={"description": "x", "type": "text"}); assert r.status_code == 500
    assert r.json() == {"error": "AI service request failed", "details": "rate limited"}

def test_not_configured(client, app, settings):
    app.state.generator = FormGenerator(settings)
    r = client.post("/api/ai/generate-form", json={"description": "x", "type": "text"}); assert r.status_code == 500
    assert r.json() == {"error": "OpenAI API key not configured"}
    assert client.get("/api/ai/generate-form").json()["configured"] is False
    assert client.get("/api/ai/test").status_code == 500

def test_ping(client, openai_client):
    openai_client.chat.completions.content = '{"message": "Hello FormCraft!"}'
    r = client.get("/api/ai/test"); assert r.status_code == 200
    assert r.json()["openaiResponse"] == '{"message": "Hello FormCraft!"}' and r.json()["model"] == "gpt-3.5-turbo"

def test_usage_info(client):
    body = client.get("/api/ai/generate-form").json()
    assert "imageselection" in body["field_types"] and body["configured"] is True

def test_fenced_json_is_accepted(settings, openai_client):
    openai_client.chat.completions.content = "```json\n" + json.dumps(GENERATED) + "\n```"
    schema = FormGenerator(settings, client=openai_client).generate("meetup", "text")
    assert len(schema.fields) == 4

def test_missing_key_raises(settings):
    with pytest.raises(GenerationNotConfigured):
        FormGenerator(settings).generate("x")
    assert issubclass(GenerationNotConfigured, GenerationError)
