"""
Per-kind field handling: the widget a respondent fills in, how a raw UI
value is coerced into the stored shape, the required-field check, and how a
stored answer is displayed on the responses views.

Every FieldKind has exactly one FieldHandler; the table is checked for
completeness at import time.
"""
import math
from dataclasses import dataclass
from datetime import date
from typing import Any, Callable, Dict, List, Optional
from email_validator import validate_email, EmailNotValidError

from formcraft.models.schemas import FieldKind, FormField

RATING_ICONS = {"stars": ("⭐", "☆"), "hearts": ("❤️", "🤍"), "thumbs": ("👍", "👎")}
YES_WORDS = {"yes", "y", "true", "on", "1"}
NO_WORDS = {"no", "n", "false", "off", "0"}

@dataclass(frozen=True)
class FieldHandler:
    widget: Callable[[FormField, Any], Dict[str, Any]]
    initial: Callable[[FormField], Any]
    update: Callable[[FormField, Any], Any]
    present: Callable[[FormField, Any], bool]
    well_typed: Callable[[FormField, Any], bool]
    display: Callable[[FormField, Any], Dict[str, Any]]

# ---------- value helpers ----------

def _to_number(raw: Any) -> Optional[float]:
    if isinstance(raw, bool) or raw is None:
        return None
    if isinstance(raw, (int, float)):
        try:
            return raw if math.isfinite(raw) else None
        except OverflowError:
            return None
    try:
        n = float(str(raw).strip())
    except ValueError:
        return None
    if not math.isfinite(n):
        return None
    return int(n) if n.is_integer() else n

def _to_bool(raw: Any) -> bool:
    if isinstance(raw, str):
        return raw.strip().lower() not in NO_WORDS | {""}
    return bool(raw)

def _is_file_ref(v: Any) -> bool:
    return isinstance(v, dict) and bool(v.get("name")) and bool(v.get("url"))

def _in_range(n: float, lo: Optional[float], hi: Optional[float]) -> bool:
    return (lo is None or n >= lo) and (hi is None or n <= hi)

def _rating_max(field: FormField) -> int:
    return int(field.max or 5)

def _slider_bounds(field: FormField):
    return (field.slider_min or 0, field.slider_max or 100, field.slider_step or 1)

def rating_icons(field: FormField, rating: float) -> List[str]:
    if field.rating_type == "numbers":
        return [str(i + 1) for i in range(_rating_max(field))]
    on, off = RATING_ICONS.get(field.rating_type or "stars", RATING_ICONS["stars"])
    return [on if i < rating else off for i in range(_rating_max(field))]

# ---------- presence checks ----------

def filled(field: FormField, v: Any) -> bool:
    if v is None or v is False:
        return False
    if isinstance(v, str):
        return v.strip() != ""
    if isinstance(v, (list, tuple, dict)):
        return len(v) > 0
    return True

def truthy(field: FormField, v: Any) -> bool:
    return bool(v)

def positive(field: FormField, v: Any) -> bool:
    n = _to_number(v)
    return n is not None and n > 0

def image_choice_present(field: FormField, v: Any) -> bool:
    if field.multiple:
        return isinstance(v, list) and len(v) > 0
    return filled(field, v)

# ---------- shape checks (required values only) ----------

def any_scalar(field: FormField, v: Any) -> bool:
    return isinstance(v, (str, int, float))

def one_of_options(field: FormField, v: Any) -> bool:
    if not isinstance(v, (str, int, float)):
        return False
    return not field.options or str(v) in field.options

def email_ok(field: FormField, v: Any) -> bool:
    if not isinstance(v, str):
        return False
    try:
        validate_email(v.strip(), check_deliverability=False)
    except EmailNotValidError:
        return False
    return True

def number_ok(field: FormField, v: Any) -> bool:
    n = _to_number(v)
    return n is not None and _in_range(n, field.min, field.max)

def date_ok(field: FormField, v: Any) -> bool:
    try:
        date.fromisoformat(str(v))
    except ValueError:
        return False
    return True

def rating_ok(field: FormField, v: Any) -> bool:
    n = _to_number(v)
    return n is not None and 1 <= n <= _rating_max(field)

def slider_ok(field: FormField, v: Any) -> bool:
    lo, hi, _ = _slider_bounds(field)
    n = _to_number(v)
    return n is not None and _in_range(n, lo, hi)

def location_ok(field: FormField, v: Any) -> bool:
    if not isinstance(v, dict):
        return False
    has_coords = _to_number(v.get("latitude")) is not None and _to_number(v.get("longitude")) is not None
    return has_coords or bool(str(v.get("address") or "").strip())

def files_ok(field: FormField, v: Any) -> bool:
    if isinstance(v, list):
        return len(v) > 0 and all(_is_file_ref(x) for x in v)
    return _is_file_ref(v)

def signature_ok(field: FormField, v: Any) -> bool:
    return isinstance(v, str) and v.startswith("data:image")

def image_choice_ok(field: FormField, v: Any) -> bool:
    if field.multiple:
        return isinstance(v, list) and all(isinstance(x, str) for x in v)
    return isinstance(v, str)

def yesno_ok(field: FormField, v: Any) -> bool:
    return v is True or v in ("yes", "no")

def always(field: FormField, v: Any) -> bool:
    return True

# ---------- update (raw UI value -> stored shape) ----------

def as_text(field: FormField, raw: Any) -> str:
    return "" if raw is None else str(raw)

def as_number(field: FormField, raw: Any):
    n = _to_number(raw)
    return "" if n is None else n

def as_rating(field: FormField, raw: Any) -> int:
    n = _to_number(raw)
    return 0 if n is None else max(0, min(int(n), _rating_max(field)))

def as_slider(field: FormField, raw: Any):
    n = _to_number(raw)
    return _slider_bounds(field)[0] if n is None else n

def as_bool(field: FormField, raw: Any) -> bool:
    return _to_bool(raw)

def as_yesno(field: FormField, raw: Any) -> str:
    # a literal False is no answer; only an explicit "no" word records one
    if raw is True:
        return "yes"
    if raw is False:
        return ""
    word = str(raw or "").strip().lower()
    if word in YES_WORDS:
        return "yes"
    if word in NO_WORDS:
        return "no"
    return ""

def as_location(field: FormField, raw: Any):
    if isinstance(raw, str):
        return {"address": raw} if raw.strip() else ""
    if not isinstance(raw, dict):
        return ""
    lat, lng = _to_number(raw.get("latitude")), _to_number(raw.get("longitude"))
    loc: Dict[str, Any] = {}
    if lat is not None and lng is not None:
        loc.update(latitude=lat, longitude=lng)
    address = str(raw.get("address") or "").strip()
    if not address and loc:
        address = f"{lat:.6f}, {lng:.6f}"
    if address:
        loc["address"] = address
    return loc or ""

def as_files(field: FormField, raw: Any):
    items = raw if isinstance(raw, list) else ([raw] if raw else [])
    refs = [{"name": x["name"], "url": x["url"]} for x in items if _is_file_ref(x)]
    if field.multiple:
        return refs
    return refs[0] if refs else ""

def as_image_choice(field: FormField, raw: Any):
    if field.multiple:
        items = raw if isinstance(raw, list) else ([raw] if raw else [])
        return [str(x) for x in items]
    if isinstance(raw, list):
        return str(raw[0]) if raw else ""
    return as_text(field, raw)

# ---------- widgets ----------

def text_input(input_type: str):
    def widget(field: FormField, value: Any) -> Dict[str, Any]:
        return {"widget": "input", "input_type": input_type}
    return widget

def textarea_widget(field, value):
    return {"widget": "textarea", "rows": 4}

def number_widget(field, value):
    return {"widget": "input", "input_type": "number", "min": field.min, "max": field.max, "step": field.step}

def date_widget(field, value):
    # blank date inputs start on today unless the creator set a placeholder date
    return {"widget": "input", "input_type": "date",
            "default": field.placeholder or date.today().isoformat()}

def select_widget(field, value):
    return {"widget": "select", "options": field.options or [], "empty_option": "Select an option..."}

def radio_widget(field, value):
    return {"widget": "radio_group", "options": field.options or []}

def checkbox_widget(field, value):
    return {"widget": "checkbox"}

def task_widget(field, value):
    return {"widget": "checkbox", "style": "task"}

def yesno_widget(field, value):
    return {"widget": "radio_group", "options": ["yes", "no"], "labels": {"yes": "✅ Yes", "no": "❌ No"}}

def rating_widget(field, value):
    return {"widget": "rating", "max": _rating_max(field), "rating_type": field.rating_type or "stars",
            "icons": rating_icons(field, _to_number(value) or 0)}

def slider_widget(field, value):
    lo, hi, step = _slider_bounds(field)
    return {"widget": "range", "min": lo, "max": hi, "step": step}

def upload_widget(default_accept: Optional[str]):
    def widget(field: FormField, value: Any) -> Dict[str, Any]:
        return {"widget": "file_upload", "accept": field.accept or default_accept,
                "multiple": bool(field.multiple), "upload": True}
    return widget

def audio_widget(field, value):
    return {"widget": "audio_recorder", "accept": field.accept or "audio/*", "upload": True}

def signature_widget(field, value):
    return {"widget": "signature_pad", "output": "data_url"}

def location_widget(field, value):
    return {"widget": "location_picker", "manual_entry": True}

def image_choice_widget(field, value):
    if not field.options:
        return {"widget": "notice", "message": "No images available for selection"}
    return {"widget": "image_choice", "options": field.options, "multiple": bool(field.multiple),
            "prompt": "Select one or more images:" if field.multiple else "Select an image:"}

def scanner_widget(field, value):
    return {"widget": "scanner", "manual_entry": True}

# ---------- display ----------

def show_text(field, value):
    return {"kind": "text", "text": str(value)}

def show_badge(field, value):
    return {"kind": "badge", "text": str(value)}

def show_boolean(field, value):
    yes = value == "yes" if isinstance(value, str) and value in ("yes", "no") else bool(value)
    return {"kind": "boolean", "value": yes, "text": "✅ Yes" if yes else "❌ No"}

def show_rating(field, value):
    rating = _to_number(value) or 0
    return {"kind": "rating", "value": rating, "max": _rating_max(field),
            "icons": rating_icons(field, rating), "text": f"({rating}/{_rating_max(field)})"}

def show_slider(field, value):
    lo, hi, _ = _slider_bounds(field)
    return {"kind": "slider", "value": value, "range": [lo, hi], "text": f"{value} (Range: {lo} - {hi})"}

def _media(field: FormField, ref: Dict[str, Any]) -> str:
    name = str(ref.get("name", "")).lower()
    if field.type == FieldKind.IMAGE or name.endswith((".jpg", ".jpeg", ".png", ".gif", ".webp")):
        return "image"
    if field.type == FieldKind.AUDIO or name.endswith((".mp3", ".wav", ".ogg", ".m4a")):
        return "audio"
    return "file"

def show_files(field, value):
    items = value if isinstance(value, list) else [value]
    refs = [x for x in items if _is_file_ref(x)]
    if not refs:
        return show_text(field, value)
    return {"kind": "files", "files": [
        {"name": r["name"], "url": r["url"], "media": _media(field, r),
         "inline": str(r["url"]).startswith("data:")} for r in refs]}

def show_signature(field, value):
    if isinstance(value, str) and value.startswith("data:image"):
        return {"kind": "signature", "url": value, "text": "Digital signature"}
    return show_text(field, value)

def show_location(field, value):
    if not (isinstance(value, dict) and value.get("address")):
        return show_text(field, value)
    out = {"kind": "location", "address": value["address"], "text": f"📍 {value['address']}"}
    lat, lng = _to_number(value.get("latitude")), _to_number(value.get("longitude"))
    if lat is not None and lng is not None:
        out.update(latitude=lat, longitude=lng, map_url=f"https://www.google.com/maps?q={lat},{lng}")
    return out

def show_images(field, value):
    images = [str(x) for x in value] if isinstance(value, list) else [str(value)]
    n = len(images)
    return {"kind": "images", "images": images, "text": f"Selected {n} image{'' if n == 1 else 's'}"}

def show_code(field, value):
    return {"kind": "code", "text": f"📷 {value}"}

# ---------- dispatch table ----------

def _empty(field: FormField) -> Any:
    return ""

def _false(field: FormField) -> bool:
    return False

def _zero(field: FormField) -> int:
    return 0

def _slider_start(field: FormField):
    return _slider_bounds(field)[0]

def _handler(widget, update, well_typed, display, present=filled, initial=_empty) -> FieldHandler:
    return FieldHandler(widget=widget, initial=initial, update=update, present=present,
                        well_typed=well_typed, display=display)

FIELD_HANDLERS: Dict[FieldKind, FieldHandler] = {
    FieldKind.TEXT: _handler(text_input("text"), as_text, any_scalar, show_text),
    FieldKind.EMAIL: _handler(text_input("email"), as_text, email_ok, show_text),
    FieldKind.TEXTAREA: _handler(textarea_widget, as_text, any_scalar, show_text),
    FieldKind.SELECT: _handler(select_widget, as_text, one_of_options, show_badge),
    FieldKind.RADIO: _handler(radio_widget, as_text, one_of_options, show_badge),
    FieldKind.CHECKBOX: _handler(checkbox_widget, as_bool, always, show_boolean, truthy, _false),
    FieldKind.NUMBER: _handler(number_widget, as_number, number_ok, show_text),
    FieldKind.DATE: _handler(date_widget, as_text, date_ok, show_text),
    FieldKind.FILE: _handler(upload_widget(None), as_files, files_ok, show_files),
    FieldKind.IMAGE: _handler(upload_widget("image/*"), as_files, files_ok, show_files),
    FieldKind.RATING: _handler(rating_widget, as_rating, rating_ok, show_rating, positive, _zero),
    FieldKind.LOCATION: _handler(location_widget, as_location, location_ok, show_location),
    FieldKind.SIGNATURE: _handler(signature_widget, as_text, signature_ok, show_signature),
    FieldKind.AUDIO: _handler(audio_widget, as_files, files_ok, show_files),
    FieldKind.SLIDER: _handler(slider_widget, as_slider, slider_ok, show_slider, filled, _slider_start),
    FieldKind.YESNO: _handler(yesno_widget, as_yesno, yesno_ok, show_boolean, truthy, _false),
    FieldKind.TASK: _handler(task_widget, as_bool, always, show_boolean, truthy, _false),
    FieldKind.SCANNER: _handler(scanner_widget, as_text, any_scalar, show_code),
    FieldKind.IMAGESELECTION: _handler(image_choice_widget, as_image_choice, image_choice_ok, show_images,
                                       image_choice_present),
}

_missing = set(FieldKind) - set(FIELD_HANDLERS)
if _missing:
    raise RuntimeError(f"No field handler for kinds: {sorted(k.value for k in _missing)}")

def handler_for(field: FormField) -> FieldHandler:
    return FIELD_HANDLERS[field.type]

# ---------- form-level operations ----------

def initial_values(fields: List[FormField]) -> Dict[str, Any]:
    return {f.id: handler_for(f).initial(f) for f in fields}

def render_field(field: FormField, value: Any = None) -> Dict[str, Any]:
    h = handler_for(field)
    current = h.initial(field) if value is None else value
    out = {"id": field.id, "type": field.type.value, "label": field.label, "required": field.required,
           "placeholder": field.placeholder, "value": current}
    out.update(h.widget(field, current))
    return out

def render_form(fields: List[FormField], values: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
    values = values or {}
    return [render_field(f, values.get(f.id)) for f in fields]

def apply_update(field: FormField, raw: Any) -> Any:
    """Coerce a raw widget value into the stored shape for the field's kind."""
    return handler_for(field).update(field, raw)

def is_satisfied(field: FormField, value: Any) -> bool:
    if not field.required:
        return True
    return handler_for(field).present(field, value)

def validate_response(fields: List[FormField], answers: Dict[str, Any]) -> Dict[str, str]:
    """Per-field error messages for a candidate response; empty when valid."""
    errors: Dict[str, str] = {}
    for f in fields:
        if not f.required:
            continue
        value = answers.get(f.id)
        h = handler_for(f)
        if not h.present(f, value):
            errors[f.id] = f"{f.label} is required"
        elif not h.well_typed(f, value):
            errors[f.id] = f"{f.label} has an invalid value"
    return errors

def display_value(field: FormField, value: Any) -> Dict[str, Any]:
    if value is None or value == "":
        return {"kind": "empty", "text": "No answer"}
    return handler_for(field).display(field, value)

def display_response(fields: List[FormField], data: Dict[str, Any]) -> List[Dict[str, Any]]:
    return [{"field_id": f.id, "label": f.label, "type": f.type.value, "display": display_value(f, data.get(f.id))}
            for f in fields]
