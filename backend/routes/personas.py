"""Registry routes: personas and modes."""

from fastapi import APIRouter, Depends, HTTPException

from persona_registry import Persona, PersonaRegistry
from schemas import ModeSummary, PersonaDetail, PersonaSummary, RegistryInfo, SectionSchema
from deps import get_registry

router = APIRouter(prefix="/api", tags=["personas"])


def _summary(persona: Persona) -> dict:
    return {
        "id": persona.id,
        "name": persona.name,
        "description": persona.description,
        "triggers": list(persona.triggers),
        "default_mode": persona.default_mode,
        "overridden_modes": list(persona.sections),
    }


@router.get("/personas", response_model=RegistryInfo)
async def list_personas(registry: PersonaRegistry = Depends(get_registry)):
    return RegistryInfo(
        version=registry.version,
        default_persona=registry.default_persona.id,
        personas=[PersonaSummary(**_summary(p)) for p in registry.personas],
    )


@router.get("/personas/{persona_id}", response_model=PersonaDetail)
async def get_persona(persona_id: str, registry: PersonaRegistry = Depends(get_registry)):
    if not registry.has_persona(persona_id):
        raise HTTPException(status_code=404, detail="Persona not found")
    persona = registry.get(persona_id)
    return PersonaDetail(
        **_summary(persona),
        sections={
            spec.id.value: [SectionSchema.model_validate(s) for s in registry.sections_for(persona, spec.id)]
            for spec in registry.modes
        },
    )


@router.get("/modes", response_model=list[ModeSummary])
async def list_modes(registry: PersonaRegistry = Depends(get_registry)):
    return [
        ModeSummary(
            id=spec.id,
            description=spec.description,
            locked=spec.locked,
            keywords=list(spec.keywords),
            sections=[SectionSchema.model_validate(s) for s in spec.sections],
        )
        for spec in registry.modes
    ]
