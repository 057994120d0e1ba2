"""Section skeletons, content filling and markdown rendering."""

import re
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Mapping, Optional, Protocol, Sequence

from errors import MissingSectionContent
from intent import Request
from persona_registry import Mode, OutputSection, Persona, PersonaRegistry, SectionKind
from text_utils import unfence

CHECKLIST_PREFIX_REGEX = re.compile(r"^\s*(?:[-*+]\s*)?(?:\[( |x|X)\]\s*)?(?:\d+[.)]\s+)?")
TABLE_SEPARATOR_REGEX = re.compile(r"^\s*\|?\s*:?-{3,}:?\s*(\|\s*:?-{3,}:?\s*)*\|?\s*$")


class ContentGenerator(Protocol):
    """External collaborator that writes section content.

    One call covers every requested section; the assembler awaits it once.
    Returns a mapping of section label to content.
    """

    async def generate_sections(
        self,
        request: Request,
        persona: Persona,
        mode: Mode,
        sections: Sequence[OutputSection],
        feedback: Sequence[str] = (),
    ) -> Mapping[str, str]:
        ...


class ResponseStatus(str, Enum):
    PENDING = "pending"
    VALID = "valid"
    FAILED = "failed"


@dataclass(frozen=True)
class FilledSection:
    kind: SectionKind
    label: str
    content: str
    required: bool = True


@dataclass
class AssembledResponse:
    persona_id: str
    mode: Mode
    sections: list[FilledSection]
    status: ResponseStatus = ResponseStatus.PENDING
    violated_rules: list[str] = field(default_factory=list)
    attempts: int = 0

    @property
    def labels(self) -> list[str]:
        return [s.label for s in self.sections]

    def section(self, label: str) -> Optional[FilledSection]:
        for s in self.sections:
            if s.label.lower() == label.lower():
                return s
        return None


def build_skeleton(registry: PersonaRegistry, persona: Persona, mode: Mode) -> tuple[OutputSection, ...]:
    """Ordered required layout for (persona, mode). Deterministic for identical inputs."""
    return tuple(registry.sections_for(persona, mode))


def _lookup(contents: Mapping[str, str], label: str) -> str:
    if label in contents:
        return str(contents[label] or "").strip()
    wanted = label.lower()
    for key, value in contents.items():
        if str(key).strip().lower() == wanted:
            return str(value or "").strip()
    return ""


def fill_skeleton(
    persona: Persona,
    mode: Mode,
    skeleton: Sequence[OutputSection],
    contents: Mapping[str, str],
) -> AssembledResponse:
    filled: list[FilledSection] = []
    missing: list[str] = []
    for slot in skeleton:
        text = _lookup(contents, slot.label)
        if not text:
            if slot.required:
                missing.append(slot.label)
            continue
        filled.append(FilledSection(slot.kind, slot.label, text, slot.required))
    if missing:
        raise MissingSectionContent(missing)
    return AssembledResponse(persona_id=persona.id, mode=mode, sections=filled)


async def assemble(
    request: Request,
    persona: Persona,
    mode: Mode,
    generator: ContentGenerator,
    registry: PersonaRegistry,
) -> AssembledResponse:
    skeleton = build_skeleton(registry, persona, mode)
    contents = await generator.generate_sections(request, persona, mode, skeleton)
    return fill_skeleton(persona, mode, skeleton, contents or {})


async def regenerate(
    response: AssembledResponse,
    request: Request,
    persona: Persona,
    generator: ContentGenerator,
    registry: PersonaRegistry,
    labels: Sequence[str],
    feedback: Sequence[str] = (),
) -> AssembledResponse:
    """Ask the generator again for *labels* only and merge the result in skeleton order."""
    skeleton = build_skeleton(registry, persona, response.mode)
    wanted = {label.lower() for label in labels}
    slots = [slot for slot in skeleton if slot.label.lower() in wanted]
    merged = {s.label: s.content for s in response.sections}
    if slots:
        fresh = await generator.generate_sections(request, persona, response.mode, slots, feedback)
        for slot in slots:
            text = _lookup(fresh or {}, slot.label)
            if text:
                merged[slot.label] = text
            else:
                merged.pop(slot.label, None)
    rebuilt = fill_skeleton(persona, response.mode, skeleton, merged)
    return replace(rebuilt, attempts=response.attempts)


def _render_checklist(content: str) -> str:
    out: list[str] = []
    for line in content.splitlines():
        if not line.strip():
            continue
        m = CHECKLIST_PREFIX_REGEX.match(line)
        checked = bool(m and m.group(1) and m.group(1).lower() == "x")
        item = line[m.end():].strip() if m else line.strip()
        if item:
            out.append(f"- [{'x' if checked else ' '}] {item}")
    return "\n".join(out)


def _render_code(content: str) -> str:
    language, _ = unfence(content)
    if language is not None:
        return content.strip()
    return f"```\n{content.strip()}\n```"


def _render_table(content: str, label: str) -> str:
    lines = [ln.strip() for ln in content.splitlines() if ln.strip()]
    if not lines:
        return ""
    if "|" not in lines[0]:
        rows = [f"| {label} |", "| --- |"]
        rows.extend(f"| {ln} |" for ln in lines)
        return "\n".join(rows)
    if len(lines) > 1 and TABLE_SEPARATOR_REGEX.match(lines[1]):
        return "\n".join(lines)
    columns = len([c for c in lines[0].strip("|").split("|")])
    separator = "| " + " | ".join(["---"] * max(1, columns)) + " |"
    return "\n".join([lines[0], separator] + lines[1:])


def render_section(section: FilledSection) -> str:
    if section.kind == SectionKind.CHECKLIST:
        body = _render_checklist(section.content)
    elif section.kind == SectionKind.FENCED_CODE:
        body = _render_code(section.content)
    elif section.kind == SectionKind.TABLE:
        body = _render_table(section.content, section.label)
    else:
        body = section.content.strip()
    return f"## {section.label}\n\n{body}"


def render_markdown(response: AssembledResponse) -> str:
    return "\n\n".join(render_section(s) for s in response.sections) + "\n"
