import re
from typing import Optional

UUID_RE = re.compile(r"^[0-9a-f]{8}-[0-9a-f]{4}-[1-5][0-9a-f]{3}-[89ab][0-9a-f]{3}-[0-9a-f]{12}$", re.IGNORECASE)
_STRIP_RE = re.compile(r"[^\w\s-]", re.ASCII)
_COLLAPSE_RE = re.compile(r"[\s_-]+")
_EDGE_HYPHENS_RE = re.compile(r"^-+|-+$")
MAX_TITLE_SLUG = 50
UUID_PARTS = 5

def is_valid_uuid(value: str) -> bool:
    return bool(value) and UUID_RE.match(value) is not None

def title_slug(title: str) -> str:
    s = (title or "").lower().strip()
    s = _STRIP_RE.sub("", s)
    s = _COLLAPSE_RE.sub("-", s)
    s = _EDGE_HYPHENS_RE.sub("", s)
    return s[:MAX_TITLE_SLUG]

def generate_form_slug(title: str, form_id: str) -> str:
    """Readable path segment for a form; the full id is kept as the suffix."""
    base = title_slug(title)
    return f"{base}-{form_id}" if base else f"form-{form_id}"

def extract_id_from_slug(slug: str) -> Optional[str]:
    """First UUID-shaped run of five hyphen-separated parts, left to right."""
    parts = (slug or "").split("-")
    for i in range(len(parts) - UUID_PARTS + 1):
        candidate = "-".join(parts[i:i + UUID_PARTS])
        if UUID_RE.match(candidate):
            return candidate
    return None

def share_url(base_url: str, title: str, form_id: str) -> str:
    return f"{base_url.rstrip('/')}/forms/{generate_form_slug(title, form_id)}"
