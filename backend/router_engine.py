"""Request routing: persona -> mode -> assembled sections -> rule gate.

resolve() is pure and synchronous. route() awaits the content generator
once per pass and regenerates only the sections that broke a rule, up to
ROUTER_MAX_REGENERATIONS extra passes. A failed response never leaves this
module; the caller gets ValidationFailure instead.
"""

from dataclasses import dataclass
from typing import Optional

import settings
from errors import MissingSectionContent, ValidationFailure
from intent import Request, parse_request
from mode_selector import ModeDecision, select_mode
from persona_registry import Mode, OutputSection, Persona, PersonaRegistry
from rule_validator import RULE_DESCRIPTIONS, STRUCTURAL_RULES, ValidationReport, validate_response
from telemetry import append_router_telemetry
from template_assembler import (
    AssembledResponse,
    ContentGenerator,
    assemble,
    build_skeleton,
    regenerate,
    render_markdown,
)
from trigger_matcher import PersonaMatch, match_persona


@dataclass(frozen=True)
class Resolution:
    request: Request
    persona_match: PersonaMatch
    mode_decision: ModeDecision
    skeleton: tuple[OutputSection, ...]

    @property
    def persona(self) -> Persona:
        return self.persona_match.persona

    @property
    def mode(self) -> Mode:
        return self.mode_decision.mode


@dataclass(frozen=True)
class RoutedResponse:
    resolution: Resolution
    response: AssembledResponse
    markdown: str


def resolve(text: str, registry: PersonaRegistry, direct_max_words: Optional[int] = None) -> Resolution:
    request = parse_request(text, registry.trigger_index)
    persona_match = match_persona(request, registry)
    decision = select_mode(request, persona_match.persona, registry, direct_max_words=direct_max_words)
    skeleton = build_skeleton(registry, persona_match.persona, decision.mode)
    return Resolution(request, persona_match, decision, skeleton)


def sections_to_regenerate(report: ValidationReport, skeleton: tuple[OutputSection, ...]) -> list[str]:
    if any(v.rule_id in STRUCTURAL_RULES for v in report.violations):
        return [slot.label for slot in skeleton]
    flagged = {label.lower() for v in report.violations for label in v.sections}
    return [slot.label for slot in skeleton if slot.label.lower() in flagged]


def violation_feedback(report: ValidationReport) -> list[str]:
    return [
        f"{v.rule_id}: {RULE_DESCRIPTIONS.get(v.rule_id, 'rule violated')} ({', '.join(v.sections)})"
        for v in report.violations
    ]


async def route(
    text: str,
    generator: ContentGenerator,
    registry: PersonaRegistry,
    max_regenerations: Optional[int] = None,
) -> RoutedResponse:
    if max_regenerations is None:
        cap = settings.ROUTER_MAX_REGENERATIONS
    else:
        cap = max(0, min(settings.ROUTER_MAX_REGENERATIONS_LIMIT, max_regenerations))
    resolution = resolve(text, registry)
    persona, mode = resolution.persona, resolution.mode
    base_payload = {"persona": persona.id, "mode": mode.value}

    try:
        response = await assemble(resolution.request, persona, mode, generator, registry)
        report = validate_response(response, resolution.skeleton)
        attempts = 0
        while not report.ok:
            if attempts >= cap:
                append_router_telemetry(
                    "validation_failed",
                    {**base_payload, "attempts": attempts, "rule_ids": report.rule_ids},
                    level="error",
                )
                raise ValidationFailure(list(report.violations), attempts)
            attempts += 1
            labels = sections_to_regenerate(report, resolution.skeleton)
            append_router_telemetry(
                "validation_retry",
                {**base_payload, "attempt": attempts, "rule_ids": report.rule_ids, "sections": labels},
            )
            response = await regenerate(
                response,
                resolution.request,
                persona,
                generator,
                registry,
                labels,
                violation_feedback(report),
            )
            response.attempts = attempts
            report = validate_response(response, resolution.skeleton)
    except MissingSectionContent as exc:
        append_router_telemetry(
            "missing_section_content",
            {**base_payload, "sections": exc.sections, "reason": exc.reason},
            level="error",
        )
        raise

    append_router_telemetry(
        "route_ok",
        {
            **base_payload,
            "heuristic": resolution.mode_decision.heuristic,
            "fallback": resolution.persona_match.fallback,
            "attempts": response.attempts,
        },
    )
    return RoutedResponse(resolution, response, render_markdown(response))
