"""Tests for mode_selector.py (heuristic mode selection)."""
import pytest

from conftest import read_events
from intent import parse_request
from mode_selector import (
    HEURISTIC_BROAD,
    HEURISTIC_CODE_REVIEW,
    HEURISTIC_EXPLICIT,
    HEURISTIC_NARROW,
    HEURISTIC_PERSONA_DEFAULT,
    select_mode,
)
from persona_registry import Mode
from trigger_matcher import match_persona


def _decide(text, registry, **kwargs):
    request = parse_request(text, registry.trigger_index)
    persona = match_persona(request, registry).persona
    return persona, select_mode(request, persona, registry, **kwargs)


class TestScenarios:
    """End-to-end persona + mode picks for typical requests."""

    def test_qa_narrow_request_goes_direct(self, registry):
        persona, decision = _decide("@QA write a fizzbuzz function", registry)
        assert persona.id == "chaos_engineer"
        assert decision.mode == Mode.DIRECT
        assert decision.heuristic == HEURISTIC_NARROW

    def test_code_with_audit_intent_goes_critique(self, registry):
        persona, decision = _decide("Act as QA, audit this: eval(input)", registry)
        assert persona.id == "chaos_engineer"
        assert decision.mode == Mode.CRITIQUE
        assert decision.heuristic == HEURISTIC_CODE_REVIEW

    def test_sprint_plan_request(self, registry):
        persona, decision = _decide("Plan our next sprint", registry)
        assert persona.id == "scrum_master"
        assert decision.mode == Mode.SPRINT_PLANNING
        assert decision.heuristic == HEURISTIC_EXPLICIT

    def test_architecture_keyword(self, registry):
        persona, decision = _decide("Design a multi-region architecture for our payments service", registry)
        assert persona.id == "staff_engineer"
        assert decision.mode == Mode.ARCHITECT
        assert decision.heuristic == HEURISTIC_EXPLICIT


class TestExplicitSignals:
    """Keywords and directives beat every other heuristic."""

    def test_directive_with_colon(self, registry):
        _, decision = _decide("@back mode: critique this handler", registry)
        assert decision.mode == Mode.CRITIQUE
        assert decision.heuristic == HEURISTIC_EXPLICIT
        assert decision.ambiguous is False

    def test_directive_with_hyphenated_mode(self, registry):
        _, decision = _decide("@scrum mode=sprint-planning for Q3", registry)
        assert decision.mode == Mode.SPRINT_PLANNING

    def test_unknown_directive_is_ignored(self, registry):
        _, decision = _decide("@sec mode: freestyle thoughts on our login page?", registry)
        assert decision.heuristic == HEURISTIC_PERSONA_DEFAULT

    def test_keyword_overrides_code_review(self, registry):
        _, decision = _decide("@qa just the code please, review `parse(x)` later", registry)
        assert decision.mode == Mode.DIRECT
        assert decision.heuristic == HEURISTIC_EXPLICIT

    def test_keyword_inside_fenced_code_is_ignored(self, registry):
        text = "@back fix this\n```python\n# architecture notes\ndef f(x):\n    return x\n```"
        _, decision = _decide(text, registry)
        assert decision.mode == Mode.DIRECT
        assert decision.heuristic == HEURISTIC_NARROW


class TestAmbiguity:
    """Several explicit modes in one request."""

    def test_earliest_keyword_wins(self, registry):
        _, decision = _decide("roast this and give me the architecture", registry)
        assert decision.mode == Mode.CRITIQUE
        assert decision.ambiguous is True
        assert decision.candidates == (Mode.CRITIQUE, Mode.ARCHITECT)

    def test_ambiguity_is_logged_as_warning(self, registry, isolated_telemetry):
        _decide("@staff system design first, then a code review", registry)
        events = [e for e in read_events(isolated_telemetry) if e["event"] == "mode_ambiguous"]
        assert len(events) == 1
        assert events[0]["level"] == "warning"
        assert events[0]["payload"]["winner"] == "ARCHITECT"
        assert events[0]["payload"]["candidates"] == ["ARCHITECT", "CRITIQUE"]

    def test_repeated_keyword_for_one_mode_is_not_ambiguous(self, registry, isolated_telemetry):
        _, decision = _decide("@staff architecture review of the architecture", registry)
        assert decision.ambiguous is False
        assert read_events(isolated_telemetry) == []


class TestScopeHeuristics:
    """Narrow, broad, and fall-through to the persona default."""

    def test_two_deliverables_go_architect(self, registry):
        _, decision = _decide("Build a rate limiter and write the integration tests for it", registry)
        assert decision.mode == Mode.ARCHITECT
        assert decision.heuristic == HEURISTIC_BROAD

    def test_design_intent_goes_architect(self, registry):
        _, decision = _decide("@back how should we migrate the orders table?", registry)
        assert decision.mode == Mode.ARCHITECT
        assert decision.heuristic == HEURISTIC_BROAD

    def test_word_budget_controls_narrow(self, registry):
        text = "@back write a small helper that trims whitespace from strings"
        _, default_budget = _decide(text, registry)
        _, tight_budget = _decide(text, registry, direct_max_words=5)
        assert default_budget.mode == Mode.DIRECT
        assert tight_budget.mode == Mode.ARCHITECT

    @pytest.mark.parametrize(
        "text,persona_id,mode",
        [
            ("@sec thoughts on our login page?", "security_auditor", Mode.CRITIQUE),
            ("@scrum how is the team doing", "scrum_master", Mode.SPRINT_PLANNING),
            ("@legal is this okay for the EU", "legal_advisor", Mode.DIRECT),
        ],
    )
    def test_persona_default_when_nothing_fires(self, registry, text, persona_id, mode):
        persona, decision = _decide(text, registry)
        assert persona.id == persona_id
        assert decision.mode == mode
        assert decision.heuristic == HEURISTIC_PERSONA_DEFAULT

    def test_code_without_review_intent_is_not_critique(self, registry):
        _, decision = _decide("@front what does `useMemo(fn)` return", registry)
        assert decision.mode != Mode.CRITIQUE
