"""Shared fixtures for router tests."""

import json
from typing import Callable, Mapping, Optional, Sequence, Union

import pytest

import settings
from persona_registry import OutputSection, SectionKind, load_registry

SAMPLE_CONTENT = {
    SectionKind.CHECKLIST: "- Input is validated at the boundary\n- Retries are bounded",
    SectionKind.TABLE: "| Option | Cost |\n| --- | --- |\n| Queue | Low |\n| Polling | High |",
    SectionKind.HEADING_BLOCK: "Use a bounded worker pool behind the API.",
    SectionKind.FENCED_CODE: "```python\ndef add(a: int, b: int) -> int:\n    return a + b\n```",
}


def valid_contents(sections: Sequence[OutputSection]) -> dict[str, str]:
    return {s.label: SAMPLE_CONTENT[s.kind] for s in sections}


def read_events(path) -> list[dict]:
    """Telemetry lines written so far, oldest first."""
    if not path.exists():
        return []
    return [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines() if line.strip()]


class ScriptedGenerator:
    """Content generator double.

    Each call pops the next script entry. An entry is either a mapping of
    label -> content or a callable taking the requested sections. When the
    script runs out, valid sample content is returned.
    """

    def __init__(self, script: Optional[list[Union[Mapping[str, str], Callable]]] = None):
        self.script = list(script or [])
        self.calls: list[dict] = []

    async def generate_sections(self, request, persona, mode, sections, feedback=()):
        self.calls.append(
            {
                "persona": persona.id,
                "mode": mode,
                "labels": [s.label for s in sections],
                "feedback": list(feedback),
            }
        )
        if not self.script:
            return valid_contents(sections)
        entry = self.script.pop(0)
        if callable(entry):
            return entry(sections)
        return dict(entry)


@pytest.fixture(autouse=True)
def isolated_telemetry(tmp_path, monkeypatch):
    path = tmp_path / "router_telemetry.log"
    monkeypatch.setattr(settings, "ROUTER_TELEMETRY_LOG", path)
    monkeypatch.setattr(settings, "ROUTER_TELEMETRY_ENABLED", True)
    return path


@pytest.fixture(scope="session")
def registry():
    return load_registry(settings.ROUTER_REGISTRY_PATH)


@pytest.fixture
def generator():
    return ScriptedGenerator()
