"""Persona resolution from trigger aliases."""

from dataclasses import dataclass, field
from typing import Optional

from intent import Request, TriggerHit
from persona_registry import Persona, PersonaRegistry
from telemetry import append_router_telemetry


@dataclass(frozen=True)
class PersonaMatch:
    persona: Persona
    trigger: Optional[TriggerHit] = None
    candidates: tuple[str, ...] = field(default_factory=tuple)
    fallback: bool = False


def _precedence(hit: TriggerHit, registry: PersonaRegistry) -> tuple[int, int, int]:
    """Earliest position first, then the longer alias, then registry order."""
    return (hit.position, -len(hit.token), registry.persona_order(hit.persona_id))


def match_persona(request: Request, registry: PersonaRegistry) -> PersonaMatch:
    if not request.triggers:
        persona = registry.default_persona
        append_router_telemetry("persona_fallback", {"persona": persona.id})
        return PersonaMatch(persona=persona, fallback=True)

    candidates: list[str] = []
    for hit in request.triggers:
        if hit.persona_id not in candidates:
            candidates.append(hit.persona_id)

    winner = min(request.triggers, key=lambda h: _precedence(h, registry))
    if len(candidates) > 1:
        append_router_telemetry(
            "persona_conflict",
            {
                "winner": winner.persona_id,
                "trigger": winner.token,
                "candidates": candidates,
            },
        )
    return PersonaMatch(
        persona=registry.get(winner.persona_id),
        trigger=winner,
        candidates=tuple(candidates),
    )
