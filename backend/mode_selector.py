"""Response mode selection.

Heuristics run in priority order and the first one that fires decides:

1. explicit mode keyword or ``mode: <id>`` directive
2. pasted code together with a review/audit intent -> CRITIQUE
3. short request with a single deliverable -> DIRECT
4. long or multi-deliverable request -> ARCHITECT

The persona's default mode is used only when none of them fires.
"""

import re
from dataclasses import dataclass, field
from typing import Optional

import settings
from intent import Request
from persona_registry import Mode, Persona, PersonaRegistry
from telemetry import append_router_telemetry
from text_utils import phrase_positions

HEURISTIC_EXPLICIT = "explicit_keyword"
HEURISTIC_CODE_REVIEW = "code_review"
HEURISTIC_NARROW = "narrow_artifact"
HEURISTIC_BROAD = "broad_scope"
HEURISTIC_PERSONA_DEFAULT = "persona_default"

MODE_DIRECTIVE_REGEX = re.compile(r"(?i)\bmode\s*[:=]\s*([a-z][a-z_\-]*)")
DELIVERABLE_JOINER_REGEX = re.compile(r"(?i)\b(and|then|also|plus)\b|;|\n\s*[-*\d]")


@dataclass(frozen=True)
class ModeDecision:
    mode: Mode
    heuristic: str
    candidates: tuple[Mode, ...] = field(default_factory=tuple)
    ambiguous: bool = False


def explicit_mode_hits(request: Request, registry: PersonaRegistry) -> list[tuple[int, Mode]]:
    """(position, mode) for every explicit mode signal, earliest first."""
    prose = request.prose
    hits: list[tuple[int, Mode]] = []
    for m in MODE_DIRECTIVE_REGEX.finditer(prose):
        key = m.group(1).upper().replace("-", "_")
        if key in Mode.__members__ and registry.has_mode(Mode[key]):
            hits.append((m.start(), Mode[key]))
    for spec in registry.modes:
        for keyword in spec.keywords:
            hits.extend((pos, spec.id) for pos in phrase_positions(prose, keyword))
    sprint = request.intents_of("sprint")
    plan = request.intents_of("plan")
    if sprint and plan and registry.has_mode(Mode.SPRINT_PLANNING):
        hits.append((min(h.position for h in sprint + plan), Mode.SPRINT_PLANNING))
    hits.sort(key=lambda item: (item[0], registry.mode_order(item[1])))
    return hits


def _is_narrow(request: Request, max_words: int) -> bool:
    builds = request.intents_of("build")
    if request.word_count > max_words or len(builds) != 1:
        return False
    if request.has_intent("design"):
        return False
    return not DELIVERABLE_JOINER_REGEX.search(request.prose.strip())


def _is_broad(request: Request, max_words: int) -> bool:
    if request.word_count > max_words:
        return True
    if request.has_intent("design"):
        return True
    builds = request.intents_of("build")
    if len(builds) > 1:
        return True
    return bool(builds) and bool(DELIVERABLE_JOINER_REGEX.search(request.prose.strip()))


def select_mode(
    request: Request,
    persona: Persona,
    registry: PersonaRegistry,
    direct_max_words: Optional[int] = None,
) -> ModeDecision:
    max_words = settings.ROUTER_DIRECT_MAX_WORDS if direct_max_words is None else direct_max_words

    hits = explicit_mode_hits(request, registry)
    if hits:
        modes: list[Mode] = []
        for _, mode in hits:
            if mode not in modes:
                modes.append(mode)
        winner = hits[0][1]
        ambiguous = len(modes) > 1
        if ambiguous:
            append_router_telemetry(
                "mode_ambiguous",
                {
                    "persona": persona.id,
                    "heuristic": HEURISTIC_EXPLICIT,
                    "winner": winner.value,
                    "candidates": [m.value for m in modes],
                },
            )
        return ModeDecision(winner, HEURISTIC_EXPLICIT, tuple(modes), ambiguous)

    if request.has_code_block and request.has_intent("review") and registry.has_mode(Mode.CRITIQUE):
        return ModeDecision(Mode.CRITIQUE, HEURISTIC_CODE_REVIEW)

    if _is_narrow(request, max_words) and registry.has_mode(Mode.DIRECT):
        return ModeDecision(Mode.DIRECT, HEURISTIC_NARROW)

    if _is_broad(request, max_words) and registry.has_mode(Mode.ARCHITECT):
        return ModeDecision(Mode.ARCHITECT, HEURISTIC_BROAD)

    return ModeDecision(persona.default_mode, HEURISTIC_PERSONA_DEFAULT)
