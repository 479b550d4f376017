"""
AI-powered form generation from a text description or an image.
"""
import json
import logging
import re
from typing import Any, Dict, List, Optional
import openai
from fastapi import Request
from pydantic import ValidationError

from formcraft.core.config import Settings
from formcraft.models.schemas import FieldKind, FormSchema

logger = logging.getLogger(__name__)

class GenerationError(Exception):
    pass

class GenerationNotConfigured(GenerationError):
    pass

# title, description and ordered fields as produced by the model
GeneratedForm = FormSchema

FIELD_GUIDE = {
    "text": "short free text",
    "email": "email address",
    "textarea": "long free text",
    "select": "dropdown, needs options",
    "radio": "single choice, needs options",
    "checkbox": "single tick box (consent, opt-in)",
    "number": "numeric value, optional min/max/step",
    "date": "calendar date",
    "file": "document upload, optional accept and multiple",
    "image": "photo upload",
    "rating": "rating scale, max defaults to 5, rating_type stars|hearts|thumbs|numbers",
    "location": "geolocation / address",
    "signature": "hand-drawn signature",
    "audio": "voice recording",
    "slider": "numeric slider with slider_min/slider_max/slider_step",
    "yesno": "yes/no question",
    "task": "completion checkbox for a to-do item",
    "scanner": "barcode or QR code scan",
    "imageselection": "choose among images, options are image URLs, optional multiple",
}

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.MULTILINE)

class FormGenerator:
    """Turns a natural-language description or an image into a form schema."""

    def __init__(self, settings: Settings, client: Optional[Any] = None):
        self.settings = settings
        self.client = client
        self._initialize_client()

    def _initialize_client(self):
        if self.client is None and self.settings.OPENAI_API_KEY:
            self.client = openai.OpenAI(api_key=self.settings.OPENAI_API_KEY.get_secret_value())

    @property
    def configured(self) -> bool:
        return self.client is not None

    def _require_client(self):
        if not self.configured:
            raise GenerationNotConfigured("OpenAI API key not configured")

    def generate(self, description: str, kind: str = "text", image_base64: Optional[str] = None) -> GeneratedForm:
        """
        Generate a form schema.

        Args:
            description: What the form is for (or guidance for the image)
            kind: "text" or "image"
            image_base64: Image as a data URL or bare base64 (image kind only)

        Returns:
            GeneratedForm with title, description and ordered fields
        """
        self._require_client()
        messages = [
            {"role": "system", "content": self._system_prompt()},
            {"role": "user", "content": self._user_content(description, kind, image_base64)},
        ]
        model = self.settings.OPENAI_VISION_MODEL if kind == "image" else self.settings.OPENAI_MODEL
        try:
            completion = self.client.chat.completions.create(
                model=model,
                messages=messages,
                temperature=self.settings.OPENAI_TEMPERATURE,
                max_tokens=self.settings.OPENAI_MAX_TOKENS,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI generation error: {e}")
            raise GenerationError(str(e)) from e
        content = completion.choices[0].message.content if completion.choices else None
        schema = self._parse_generated_form(content)
        logger.info(f"Generated form '{schema.title}' with {len(schema.fields)} fields ({kind})")
        return schema

    def ping(self) -> Dict[str, Any]:
        """Trivial completion to confirm connectivity."""
        self._require_client()
        try:
            completion = self.client.chat.completions.create(
                model=self.settings.OPENAI_TEST_MODEL,
                messages=[{"role": "user",
                           "content": "Say 'Hello FormCraft!' in JSON format like: {\"message\": \"Hello FormCraft!\"}"}],
                temperature=0.1,
                max_tokens=50,
            )
        except openai.OpenAIError as e:
            logger.error(f"OpenAI test failed: {e}")
            raise GenerationError(str(e)) from e
        usage = completion.usage.model_dump() if getattr(completion, "usage", None) is not None else None
        return {
            "openaiResponse": completion.choices[0].message.content if completion.choices else None,
            "usage": usage,
            "model": completion.model,
        }

    def _system_prompt(self) -> str:
        kinds = "\n".join(f"- {k}: {v}" for k, v in FIELD_GUIDE.items())
        return f"""You design web forms. Reply with a single JSON object:
{{"title": string, "description": string, "fields": [field, ...]}}
Each field: {{"id": string unique in the form, "type": one of the kinds below, "label": string,
"placeholder"?: string, "required": boolean, "options"?: [string], "min"?: number, "max"?: number,
"step"?: number, "accept"?: string, "multiple"?: boolean, "rating_type"?: string,
"slider_min"?: number, "slider_max"?: number, "slider_step"?: number}}
Field kinds:
{kinds}
Use only these kinds. Keep fields in the order a respondent should answer them."""

    def _user_content(self, description: str, kind: str, image_base64: Optional[str]):
        if kind != "image":
            return f"Create a form for: {description}"
        url = image_base64 or ""
        if not url.startswith("data:"):
            url = f"data:image/png;base64,{url}"
        return [
            {"type": "text", "text": "Recreate the form shown in this image as a digital form. "
                                     f"Additional guidance: {description}"},
            {"type": "image_url", "image_url": {"url": url}},
        ]

    def _parse_generated_form(self, content: Optional[str]) -> GeneratedForm:
        if not content:
            raise GenerationError("AI returned an empty response")
        try:
            raw = json.loads(_FENCE_RE.sub("", content.strip()))
        except json.JSONDecodeError as e:
            raise GenerationError(f"AI returned malformed JSON: {e}") from e
        if not isinstance(raw, dict) or not isinstance(raw.get("fields", []), list):
            raise GenerationError("AI response is not a form object")
        raw_fields = [f for f in raw.get("fields", []) if isinstance(f, dict)]
        unknown = sorted({str(f.get("type")) for f in raw_fields} - {k.value for k in FieldKind})
        if unknown:
            raise GenerationError(f"AI returned unsupported field types: {', '.join(unknown)}")
        try:
            return FormSchema.model_validate({
                "title": str(raw.get("title") or "Untitled Form")[:255],
                "description": str(raw.get("description") or ""),
                "fields": self._normalize_ids(raw_fields),
            })
        except ValidationError as e:
            raise GenerationError(f"AI returned an invalid form: {e.error_count()} problems") from e

    def _normalize_ids(self, fields: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
        seen = set()
        out = []
        for i, f in enumerate(fields, start=1):
            fid = str(f.get("id") or "").strip()
            if not fid or fid in seen:
                fid = f"field_{i}"
                while fid in seen:
                    fid = f"{fid}_{i}"
            seen.add(fid)
            out.append({**f, "id": fid, "required": bool(f.get("required", False))})
        return out

def get_generator(request: Request) -> FormGenerator:
    return request.app.state.generator
