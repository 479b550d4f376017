"""
Form schema models shared by the builder API, the field renderer, the
response validator and the AI generator.
"""
import enum
from typing import List, Literal, Optional
from pydantic import BaseModel, Field, model_validator

class FieldKind(str, enum.Enum):
    TEXT = "text"
    EMAIL = "email"
    TEXTAREA = "textarea"
    SELECT = "select"
    RADIO = "radio"
    CHECKBOX = "checkbox"
    NUMBER = "number"
    DATE = "date"
    FILE = "file"
    IMAGE = "image"
    RATING = "rating"
    LOCATION = "location"
    SIGNATURE = "signature"
    AUDIO = "audio"
    SLIDER = "slider"
    YESNO = "yesno"
    TASK = "task"
    SCANNER = "scanner"
    IMAGESELECTION = "imageselection"

class FormField(BaseModel):
    id: str = Field(min_length=1)
    type: FieldKind
    label: str
    placeholder: Optional[str] = None
    required: bool = False
    # kind-specific attributes; not cross-checked against `type`
    options: Optional[List[str]] = None
    min: Optional[float] = None
    max: Optional[float] = None
    step: Optional[float] = None
    accept: Optional[str] = None
    multiple: Optional[bool] = None
    rating_type: Optional[Literal["stars", "hearts", "thumbs", "numbers"]] = None
    slider_min: Optional[float] = None
    slider_max: Optional[float] = None
    slider_step: Optional[float] = None

    def dump(self) -> dict:
        return self.model_dump(mode="json", exclude_none=True)

def check_unique_ids(fields: List[FormField]) -> List[FormField]:
    seen = set()
    for f in fields:
        if f.id in seen:
            raise ValueError(f"Duplicate field id: {f.id}")
        seen.add(f.id)
    return fields

class FormSchema(BaseModel):
    """Title, description and ordered fields of a form."""
    title: str = Field(min_length=1, max_length=255)
    description: str = ""
    fields: List[FormField] = Field(default_factory=list)

    @model_validator(mode="after")
    def unique_field_ids(self):
        check_unique_ids(self.fields)
        return self
