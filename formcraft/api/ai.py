from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from typing import Optional
import logging
from formcraft.services.generation import FormGenerator, get_generator, FIELD_GUIDE

router = APIRouter()
logger = logging.getLogger(__name__)

GENERATION_KINDS = ("text", "image")

class GenerateFormIn(BaseModel):
    description: Optional[str] = None
    type: Optional[str] = None
    imageBase64: Optional[str] = None

@router.post("/generate-form")
def generate_form(payload: GenerateFormIn, generator: FormGenerator = Depends(get_generator)):
    if not payload.description or not payload.type:
        raise HTTPException(400, "Description and type are required")
    if payload.type not in GENERATION_KINDS:
        raise HTTPException(400, "Type must be 'text' or 'image'")
    if payload.type == "image" and not payload.imageBase64:
        raise HTTPException(400, "Image data is required for image-based generation")
    schema = generator.generate(payload.description, payload.type, payload.imageBase64)
    return {"success": True, "data": schema.model_dump(mode="json", exclude_none=True)}

@router.get("/generate-form")
def generate_form_usage(generator: FormGenerator = Depends(get_generator)):
    return {
        "message": "AI Form Generation API",
        "endpoints": {"POST": "Generate a form from a text description or an image"},
        "parameters": {
            "description": "What the form should collect (required)",
            "type": "'text' or 'image' (required)",
            "imageBase64": "Base64 image or data URL (required when type is 'image')",
        },
        "field_types": sorted(FIELD_GUIDE),
        "configured": generator.configured,
    }

@router.get("/test")
def test_openai(generator: FormGenerator = Depends(get_generator)):
    result = generator.ping()
    logger.info(f"OpenAI connectivity check ok ({result['model']})")
    return {"success": True, "message": "OpenAI API is working", **result}
