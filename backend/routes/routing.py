"""Routing routes: resolve, assemble, validate, telemetry."""

from fastapi import APIRouter, Depends, HTTPException, status

from errors import MissingSectionContent, ValidationFailure
from persona_registry import PersonaRegistry, SectionKind
from router_engine import resolve, route
from rule_validator import validate_response
from schemas import (
    FilledSectionSchema,
    ResolveResponse,
    RouteRequest,
    RouteResponse,
    SectionSchema,
    ValidateRequest,
    ValidateResponse,
    ViolationSchema,
)
from telemetry import read_router_telemetry_summary
from template_assembler import AssembledResponse, ContentGenerator, FilledSection, build_skeleton
from deps import get_content_generator, get_registry

router = APIRouter(prefix="/api", tags=["routing"])


@router.post("/route/resolve", response_model=ResolveResponse)
async def resolve_route(request: RouteRequest, registry: PersonaRegistry = Depends(get_registry)):
    """Persona, mode and section skeleton for a request, without generating content."""
    resolution = resolve(request.text, registry)
    match, decision = resolution.persona_match, resolution.mode_decision
    return ResolveResponse(
        persona=match.persona.id,
        persona_name=match.persona.name,
        trigger=match.trigger.token if match.trigger else None,
        fallback=match.fallback,
        persona_candidates=list(match.candidates),
        mode=decision.mode,
        heuristic=decision.heuristic,
        mode_candidates=list(decision.candidates),
        mode_ambiguous=decision.ambiguous,
        has_code_block=resolution.request.has_code_block,
        intent_keywords=list(resolution.request.intent_keywords),
        skeleton=[SectionSchema.model_validate(s) for s in resolution.skeleton],
    )


@router.post("/route", response_model=RouteResponse)
async def route_request(
    request: RouteRequest,
    registry: PersonaRegistry = Depends(get_registry),
    generator: ContentGenerator = Depends(get_content_generator),
):
    try:
        routed = await route(request.text, generator, registry, max_regenerations=request.max_regenerations)
    except MissingSectionContent as exc:
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail={"error": "missing_section_content", "sections": exc.sections, "reason": exc.reason},
        )
    except ValidationFailure as exc:
        raise HTTPException(
            status_code=422,
            detail={
                "error": "validation_failure",
                "attempts": exc.attempts,
                "violations": [{"rule_id": v.rule_id, "sections": list(v.sections)} for v in exc.violations],
            },
        )

    response = routed.response
    return RouteResponse(
        persona=response.persona_id,
        mode=response.mode,
        heuristic=routed.resolution.mode_decision.heuristic,
        status=response.status.value,
        attempts=response.attempts,
        sections=[FilledSectionSchema.model_validate(s) for s in response.sections],
        markdown=routed.markdown,
    )


@router.post("/validate", response_model=ValidateResponse)
async def validate_sections(request: ValidateRequest, registry: PersonaRegistry = Depends(get_registry)):
    """Check externally written sections against the rules for (persona, mode)."""
    if not registry.has_persona(request.persona_id):
        raise HTTPException(status_code=404, detail="Persona not found")
    if not registry.has_mode(request.mode):
        raise HTTPException(status_code=404, detail="Mode not found")
    persona = registry.get(request.persona_id)
    skeleton = build_skeleton(registry, persona, request.mode)
    slots = {slot.label.lower(): slot for slot in skeleton}

    sections = []
    for item in request.sections:
        slot = slots.get(item.label.lower())
        kind = slot.kind if slot else SectionKind.HEADING_BLOCK
        label = slot.label if slot else item.label
        sections.append(FilledSection(kind, label, item.content, slot.required if slot else False))

    response = AssembledResponse(persona_id=persona.id, mode=request.mode, sections=sections)
    report = validate_response(response, skeleton)
    return ValidateResponse(
        status=report.status.value,
        violations=[ViolationSchema(rule_id=v.rule_id, sections=list(v.sections)) for v in report.violations],
    )


@router.get("/telemetry/summary")
async def get_router_telemetry_summary(hours: int = 24, limit: int = 6):
    """Return telemetry counters and recent events for the router."""
    return read_router_telemetry_summary(hours=hours, limit=limit)
