from pydantic import BaseModel, ConfigDict, Field
from typing import Optional

from persona_registry import Mode, SectionKind


# Registry Schemas
class SectionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    kind: SectionKind
    label: str
    required: bool = True


class ModeSummary(BaseModel):
    id: Mode
    description: str
    locked: bool
    keywords: list[str]
    sections: list[SectionSchema]


class PersonaSummary(BaseModel):
    id: str
    name: str
    description: str
    triggers: list[str]
    default_mode: Mode
    overridden_modes: list[Mode]


class PersonaDetail(PersonaSummary):
    # Effective layout for every mode, overrides applied
    sections: dict[str, list[SectionSchema]]


class RegistryInfo(BaseModel):
    version: str
    default_persona: str
    personas: list[PersonaSummary]


# Routing Schemas
class RouteRequest(BaseModel):
    text: str = Field(min_length=1)
    max_regenerations: Optional[int] = Field(default=None, ge=0, le=5)


class ResolveResponse(BaseModel):
    persona: str
    persona_name: str
    trigger: Optional[str] = None
    fallback: bool
    persona_candidates: list[str]
    mode: Mode
    heuristic: str
    mode_candidates: list[Mode]
    mode_ambiguous: bool
    has_code_block: bool
    intent_keywords: list[str]
    skeleton: list[SectionSchema]


class FilledSectionSchema(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    kind: SectionKind
    label: str
    content: str


class RouteResponse(BaseModel):
    persona: str
    mode: Mode
    heuristic: str
    status: str  # valid (failed responses are never returned)
    attempts: int
    sections: list[FilledSectionSchema]
    markdown: str


# Validation Schemas
class SectionContent(BaseModel):
    label: str
    content: str


class ValidateRequest(BaseModel):
    persona_id: str
    mode: Mode
    sections: list[SectionContent]


class ViolationSchema(BaseModel):
    rule_id: str
    sections: list[str]


class ValidateResponse(BaseModel):
    status: str  # valid | failed
    violations: list[ViolationSchema]
