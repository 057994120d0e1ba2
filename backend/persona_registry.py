"""
Persona and mode registry.

The registry is a versioned JSON document loaded once per process and
exposed read-only. Routing code never edits it; adding a persona means
editing persona_registry.json only.
"""

import json
from enum import Enum
from functools import lru_cache
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

import settings
from errors import MalformedRegistry
from text_utils import normalize_whitespace


class Mode(str, Enum):
    DIRECT = "DIRECT"
    ARCHITECT = "ARCHITECT"
    CRITIQUE = "CRITIQUE"
    SPRINT_PLANNING = "SPRINT_PLANNING"


class SectionKind(str, Enum):
    HEADING_BLOCK = "heading_block"
    CHECKLIST = "checklist"
    FENCED_CODE = "fenced_code"
    TABLE = "table"


class OutputSection(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: SectionKind
    label: str = Field(min_length=1)
    required: bool = True


class ModeSpec(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: Mode
    description: str = ""
    locked: bool = False
    keywords: tuple[str, ...] = ()
    sections: tuple[OutputSection, ...]

    @field_validator("keywords")
    @classmethod
    def _normalize_keywords(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(normalize_whitespace(k).lower() for k in value if normalize_whitespace(k))


class Persona(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    description: str = ""
    triggers: tuple[str, ...]
    default_mode: Mode
    sections: Mapping[Mode, tuple[OutputSection, ...]] = Field(default_factory=dict, validate_default=True)

    @field_validator("sections")
    @classmethod
    def _freeze_sections(cls, value: Mapping[Mode, tuple[OutputSection, ...]]) -> Mapping[Mode, tuple[OutputSection, ...]]:
        return MappingProxyType(dict(value))

    @field_validator("triggers")
    @classmethod
    def _normalize_triggers(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        out: list[str] = []
        for trigger in value:
            t = normalize_whitespace(trigger).lower()
            if t and t not in out:
                out.append(t)
        return tuple(out)


class RegistryDocument(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")

    version: str = Field(min_length=1)
    default_persona: str
    modes: tuple[ModeSpec, ...]
    personas: tuple[Persona, ...]


def _check_sequence(owner: str, sections: tuple[OutputSection, ...]) -> None:
    if not sections:
        raise MalformedRegistry(f"{owner} defines no sections")
    labels = [s.label.lower() for s in sections]
    if len(set(labels)) != len(labels):
        raise MalformedRegistry(f"{owner} repeats a section label")
    if not any(s.required for s in sections):
        raise MalformedRegistry(f"{owner} has no required section")


def _check_document(doc: RegistryDocument) -> None:
    mode_ids = [m.id for m in doc.modes]
    if len(set(mode_ids)) != len(mode_ids):
        raise MalformedRegistry("duplicate mode id")
    locked = {m.id for m in doc.modes if m.locked}
    for spec in doc.modes:
        _check_sequence(f"mode {spec.id.value}", spec.sections)

    persona_ids = [p.id for p in doc.personas]
    if len(set(persona_ids)) != len(persona_ids):
        raise MalformedRegistry("duplicate persona id")
    if doc.default_persona not in persona_ids:
        raise MalformedRegistry(f"default persona '{doc.default_persona}' is not defined")

    owners: dict[str, str] = {}
    for persona in doc.personas:
        if not persona.triggers:
            raise MalformedRegistry(f"persona '{persona.id}' has no trigger aliases")
        if persona.default_mode not in mode_ids:
            raise MalformedRegistry(f"persona '{persona.id}' defaults to unknown mode {persona.default_mode.value}")
        for trigger in persona.triggers:
            if trigger in owners:
                raise MalformedRegistry(
                    f"trigger '{trigger}' is claimed by both '{owners[trigger]}' and '{persona.id}'"
                )
            owners[trigger] = persona.id
        for mode, sections in persona.sections.items():
            if mode not in mode_ids:
                raise MalformedRegistry(f"persona '{persona.id}' overrides unknown mode {mode.value}")
            if mode in locked:
                raise MalformedRegistry(f"persona '{persona.id}' overrides locked mode {mode.value}")
            _check_sequence(f"persona '{persona.id}' mode {mode.value}", sections)


class PersonaRegistry:
    """Read-only lookup over a validated registry document."""

    def __init__(self, document: RegistryDocument, source: Optional[str] = None):
        _check_document(document)
        self.version = document.version
        self.source = source
        self._modes: Mapping[Mode, ModeSpec] = MappingProxyType({m.id: m for m in document.modes})
        self._personas: Mapping[str, Persona] = MappingProxyType({p.id: p for p in document.personas})
        self._default_id = document.default_persona
        self._trigger_index: Mapping[str, str] = MappingProxyType(
            {t: p.id for p in document.personas for t in p.triggers}
        )

    @property
    def default_persona(self) -> Persona:
        return self._personas[self._default_id]

    @property
    def personas(self) -> tuple[Persona, ...]:
        return tuple(self._personas.values())

    @property
    def modes(self) -> tuple[ModeSpec, ...]:
        return tuple(self._modes.values())

    @property
    def trigger_index(self) -> Mapping[str, str]:
        return self._trigger_index

    def get(self, persona_id: str) -> Persona:
        return self._personas[persona_id]

    def has_persona(self, persona_id: str) -> bool:
        return persona_id in self._personas

    def has_mode(self, mode: Mode) -> bool:
        return mode in self._modes

    def mode_order(self, mode: Mode) -> int:
        return list(self._modes).index(mode)

    def persona_order(self, persona_id: str) -> int:
        return list(self._personas).index(persona_id)

    def sections_for(self, persona: Persona, mode: Mode) -> tuple[OutputSection, ...]:
        override = persona.sections.get(mode)
        if override:
            return override
        return self._modes[mode].sections


def build_registry(data: Any, source: Optional[str] = None) -> PersonaRegistry:
    if not isinstance(data, dict):
        raise MalformedRegistry("registry root must be an object", source)
    try:
        document = RegistryDocument.model_validate(data)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()[:5]
        )
        raise MalformedRegistry(problems, source) from exc
    try:
        return PersonaRegistry(document, source=source)
    except MalformedRegistry as exc:
        raise MalformedRegistry(exc.detail, source) from None


def load_registry(path: Union[str, Path]) -> PersonaRegistry:
    p = Path(path)
    try:
        data = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as exc:
        raise MalformedRegistry("registry file not found", str(p)) from exc
    except json.JSONDecodeError as exc:
        raise MalformedRegistry(f"invalid JSON at line {exc.lineno}", str(p)) from exc
    return build_registry(data, source=str(p))


@lru_cache(maxsize=1)
def get_registry() -> PersonaRegistry:
    """Process-wide registry, loaded on first use."""
    return load_registry(settings.ROUTER_REGISTRY_PATH)
