"""Shared FastAPI dependencies used across route modules."""

from content_service import content_service
from persona_registry import PersonaRegistry, get_registry as _load_registry
from template_assembler import ContentGenerator


def get_registry() -> PersonaRegistry:
    return _load_registry()


def get_content_generator() -> ContentGenerator:
    return content_service
