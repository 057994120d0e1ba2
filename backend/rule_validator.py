"""Output rules checked after assembly.

Every rule is a plain function ``(response, skeleton) -> list[str]`` that
returns the labels of the offending sections (empty when the rule holds).
Rules are registered in RULES under a stable id; the ids show up in API
errors and telemetry, so do not rename them.
"""

import re
from dataclasses import dataclass, field
from typing import Callable, Optional, Sequence

from persona_registry import OutputSection, SectionKind
from template_assembler import AssembledResponse, FilledSection, ResponseStatus
from text_utils import CodeBlock, extract_fenced_blocks, split_sentences, unfence

RULE_NO_PLACEHOLDERS = "no-placeholder-tokens"
RULE_NO_APOLOGY = "no-apology-phrases"
RULE_TYPED_CODE = "typed-code-required"
RULE_ERROR_HANDLING = "explicit-error-handling"
RULE_REQUIRED_SECTIONS = "required-sections-present"
RULE_SECTION_ORDER = "section-order-matches-mode"

# Rules whose failure cannot be pinned on the content of a single section.
STRUCTURAL_RULES = (RULE_REQUIRED_SECTIONS, RULE_SECTION_ORDER)

RULE_DESCRIPTIONS = {
    RULE_NO_PLACEHOLDERS: "contains placeholder text (TODO, ellipsis, 'implementation details here')",
    RULE_NO_APOLOGY: "contains an apology or hedge",
    RULE_TYPED_CODE: "code is missing parameter or return type annotations",
    RULE_ERROR_HANDLING: "code performs fallible operations without non-empty error handling",
    RULE_REQUIRED_SECTIONS: "a required section is missing or empty",
    RULE_SECTION_ORDER: "sections are not in the required order",
}

PLACEHOLDER_PATTERNS = (
    r"TODO",
    r"\bFIXME\b",
    r"\bTBD\b",
    r"…",
    r"^\s*(?:#|//|/\*)?\s*\.\.\.\s*(?:\*/)?\s*$",
    r"(?i)implementation details here",
    r"(?i)your code here",
    r"(?i)rest of (?:the )?code",
    r"(?i)insert .{0,40} here",
    r"(?i)<\s*(?:placeholder|your[_ -][a-z_ -]+|insert[_ -][a-z_ -]+)\s*>",
)

APOLOGY_LEXICON = (
    r"\bi apologi[sz]e\b",
    r"\bmy apologies\b",
    r"\bapologies for\b",
    r"\bsorry\b",
    r"\bi regret\b",
    r"\bunfortunately,? i (?:cannot|can't|am unable)\b",
    r"\bi'?m afraid\b",
    r"\bas an ai\b",
)

STATIC_TYPED_LANGUAGES = {
    "go", "golang", "rust", "rs", "java", "c", "cpp", "c++", "cs", "csharp", "c#",
    "kotlin", "kt", "swift", "scala", "haskell", "hs", "ocaml", "fsharp", "f#",
}
NON_CODE_LANGUAGES = {
    "html", "xml", "css", "scss", "json", "yaml", "yml", "toml", "ini", "md", "markdown",
    "text", "txt", "sql", "bash", "sh", "shell", "console", "dockerfile", "diff",
}

PY_DEF_REGEX = re.compile(r"^\s*(?:async\s+)?def\s+(\w+)\s*\((.*?)\)\s*(->\s*[^:]+)?:", re.MULTILINE | re.DOTALL)
JS_FUNCTION_REGEX = re.compile(r"\bfunction\s*\*?\s*\w*\s*\(([^)]*)\)\s*(:\s*[\w<>\[\]|., ]+)?\s*\{")
JS_ARROW_REGEX = re.compile(r"\(([^()]*)\)\s*(:\s*[\w<>\[\]|., ]+)?\s*=>")
JSDOC_REGEX = re.compile(r"@(?:param|returns?)\s*\{[^}]+\}")

ERROR_PRONE_PATTERNS = (
    r"\bopen\(",
    r"\bfetch\(",
    r"\b(?:requests|httpx|axios|urllib)\.",
    r"\bjson\.loads\(",
    r"\bJSON\.parse\(",
    r"\bparseInt\(",
    r"\bint\(\s*input",
    r"\beval\(",
    r"\bexec\(",
    r"\bsubprocess\.",
    r"\bsocket\.",
    r"\.connect\(",
    r"\.execute\(",
    r"\.query\(",
    r"\bfs\.\w+",
    r"\bos\.(?:remove|rename|makedirs|mkdir)\(",
)
# Structural forms only: the bare word "try" in a comment or string is not a handler.
ERROR_HANDLING_PATTERNS = (
    r"(?m)^\s*try\s*:",
    r"(?m)^\s*except\b[^\n]*:",
    r"\btry\s*\{",
    r"\bcatch\s*(?:\([^)]*\))?\s*\{",
    r"\.catch\(",
    r"\bif\s+err\s*!=\s*nil\b",
    r"\bResult<",
    r"\?;",
    r"\bwith\s+suppress\(",
)
EMPTY_HANDLER_PATTERNS = (
    r"except[^\n]*:\s*(?:\n\s*)?pass\b",
    r"except[^\n]*:\s*(?:\n\s*)?\.\.\.",
    r"catch\s*(?:\([^)]*\))?\s*\{\s*\}",
    r"\.catch\(\s*\(\s*\w*\s*\)\s*=>\s*\{\s*\}\s*\)",
    r"if\s+err\s*!=\s*nil\s*\{\s*\}",
)


@dataclass(frozen=True)
class RuleViolation:
    rule_id: str
    sections: tuple[str, ...] = ()


@dataclass(frozen=True)
class ValidationReport:
    status: ResponseStatus
    violations: tuple[RuleViolation, ...] = field(default_factory=tuple)

    @property
    def rule_ids(self) -> list[str]:
        return [v.rule_id for v in self.violations]

    @property
    def ok(self) -> bool:
        return self.status == ResponseStatus.VALID


def _code_blocks(section: FilledSection) -> list[CodeBlock]:
    """Code carried by a section: the whole body for code sections, fenced blocks elsewhere."""
    if section.kind == SectionKind.FENCED_CODE:
        blocks = extract_fenced_blocks(section.content)
        if blocks:
            return blocks
        language, body = unfence(section.content)
        return [CodeBlock(language=language or "", body=body)]
    return extract_fenced_blocks(section.content)


def check_no_placeholders(response: AssembledResponse, skeleton: Sequence[OutputSection] = ()) -> list[str]:
    bad = []
    for section in response.sections:
        if any(re.search(p, section.content, re.MULTILINE) for p in PLACEHOLDER_PATTERNS):
            bad.append(section.label)
    return bad


def check_no_apology(response: AssembledResponse, skeleton: Sequence[OutputSection] = ()) -> list[str]:
    bad = []
    for section in response.sections:
        if section.kind == SectionKind.FENCED_CODE:
            continue
        prose = section.content
        for block in extract_fenced_blocks(prose):
            prose = prose.replace(block.body, " ")
        sentences = [s.lower() for s in split_sentences(prose)]
        if any(re.search(p, s) for s in sentences for p in APOLOGY_LEXICON):
            bad.append(section.label)
    return bad


def _split_params(params: str) -> list[str]:
    """Split a parameter list on top-level commas only."""
    parts: list[str] = []
    depth = 0
    current = ""
    for ch in params:
        if ch in "([{<":
            depth += 1
        elif ch in ")]}>":
            depth = max(0, depth - 1)
        if ch == "," and depth == 0:
            parts.append(current.strip())
            current = ""
            continue
        current += ch
    if current.strip():
        parts.append(current.strip())
    return parts


def _python_untyped(body: str) -> bool:
    for m in PY_DEF_REGEX.finditer(body):
        params, returns = m.group(2), m.group(3)
        if not returns:
            return True
        for raw in _split_params(params):
            name = raw.split("=")[0].strip()
            if name in ("self", "cls", "*", "/"):
                continue
            if ":" not in name:
                return True
    return False


def _script_untyped(body: str) -> bool:
    if JSDOC_REGEX.search(body):
        return False
    for regex in (JS_FUNCTION_REGEX, JS_ARROW_REGEX):
        for m in regex.finditer(body):
            params, returns = m.group(1), m.group(2)
            if not returns:
                return True
            if any(":" not in p.split("=")[0] for p in _split_params(params)):
                return True
    return False


def code_is_typed(block: CodeBlock) -> bool:
    language = block.language
    if language in STATIC_TYPED_LANGUAGES or language in NON_CODE_LANGUAGES:
        return True
    if language in ("python", "py", "python3"):
        return not _python_untyped(block.body)
    if language in ("ts", "typescript", "tsx", "js", "javascript", "jsx", "mjs"):
        return not _script_untyped(block.body)
    return not (_python_untyped(block.body) or _script_untyped(block.body))


def check_typed_code(response: AssembledResponse, skeleton: Sequence[OutputSection] = ()) -> list[str]:
    return [
        section.label
        for section in response.sections
        if any(not code_is_typed(b) for b in _code_blocks(section))
    ]


def code_handles_errors(block: CodeBlock) -> bool:
    body = block.body
    if block.language in NON_CODE_LANGUAGES:
        return True
    if any(re.search(p, body) for p in EMPTY_HANDLER_PATTERNS):
        return False
    if not any(re.search(p, body) for p in ERROR_PRONE_PATTERNS):
        return True
    return any(re.search(p, body) for p in ERROR_HANDLING_PATTERNS)


def check_error_handling(response: AssembledResponse, skeleton: Sequence[OutputSection] = ()) -> list[str]:
    return [
        section.label
        for section in response.sections
        if any(not code_handles_errors(b) for b in _code_blocks(section))
    ]


def check_required_sections(response: AssembledResponse, skeleton: Sequence[OutputSection] = ()) -> list[str]:
    present = {s.label.lower() for s in response.sections if s.content.strip()}
    return [slot.label for slot in skeleton if slot.required and slot.label.lower() not in present]


def check_section_order(response: AssembledResponse, skeleton: Sequence[OutputSection] = ()) -> list[str]:
    emitted = [s.label.lower() for s in response.sections]
    expected = [
        slot.label.lower()
        for slot in skeleton
        if slot.required or slot.label.lower() in emitted
    ]
    if emitted == expected:
        return []
    known = {slot.label.lower() for slot in skeleton}
    out_of_place = [s.label for s in response.sections if s.label.lower() not in known]
    return out_of_place or [s.label for s in response.sections]


RULES: dict[str, Callable[[AssembledResponse, Sequence[OutputSection]], list[str]]] = {
    RULE_NO_PLACEHOLDERS: check_no_placeholders,
    RULE_NO_APOLOGY: check_no_apology,
    RULE_TYPED_CODE: check_typed_code,
    RULE_ERROR_HANDLING: check_error_handling,
    RULE_REQUIRED_SECTIONS: check_required_sections,
    RULE_SECTION_ORDER: check_section_order,
}


def validate_response(
    response: AssembledResponse,
    skeleton: Sequence[OutputSection],
    rules: Optional[Sequence[str]] = None,
) -> ValidationReport:
    """Run every rule (or the listed ones) and stamp the response with the outcome."""
    violations: list[RuleViolation] = []
    for rule_id in rules or list(RULES):
        offenders = RULES[rule_id](response, skeleton)
        if offenders:
            violations.append(RuleViolation(rule_id, tuple(offenders)))
    status = ResponseStatus.FAILED if violations else ResponseStatus.VALID
    response.status = status
    response.violated_rules = [v.rule_id for v in violations]
    return ValidationReport(status=status, violations=tuple(violations))
