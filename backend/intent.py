"""Request analysis: trigger hits, code presence and intent keywords.

Depends only on text_utils and the registry's trigger index. Triggers are
found anywhere in the text, fenced code included. Intent keywords are only
read from prose, so a pasted snippet cannot change the mode.
"""

from dataclasses import dataclass
from typing import Mapping

from text_utils import (
    CodeBlock,
    extract_code_blocks,
    mask_fenced_blocks,
    phrase_positions,
    tokenize,
    word_count,
)

INTENT_KEYWORDS: dict[str, tuple[str, ...]] = {
    "review": ("review", "audit", "critique", "inspect", "assess", "roast", "harden"),
    "plan": ("plan", "planning", "backlog", "estimate", "estimation", "roadmap", "groom", "grooming"),
    "sprint": ("sprint", "sprints", "iteration"),
    "design": ("design", "architect", "architecture", "scale", "scaling", "migrate", "migration"),
    "build": (
        "write", "create", "build", "implement", "add", "fix", "generate",
        "convert", "refactor", "rename", "make", "draft", "translate",
    ),
}


@dataclass(frozen=True)
class TriggerHit:
    token: str
    persona_id: str
    position: int


@dataclass(frozen=True)
class IntentHit:
    keyword: str
    category: str
    position: int


@dataclass(frozen=True)
class Request:
    raw_text: str
    triggers: tuple[TriggerHit, ...]
    code_blocks: tuple[CodeBlock, ...]
    intents: tuple[IntentHit, ...]
    word_count: int

    @property
    def has_code_block(self) -> bool:
        return bool(self.code_blocks)

    @property
    def intent_keywords(self) -> tuple[str, ...]:
        return tuple(hit.keyword for hit in self.intents)

    @property
    def prose(self) -> str:
        return mask_fenced_blocks(self.raw_text)

    def has_intent(self, category: str) -> bool:
        return any(hit.category == category for hit in self.intents)

    def intents_of(self, category: str) -> list[IntentHit]:
        return [hit for hit in self.intents if hit.category == category]


def detect_triggers(text: str, trigger_index: Mapping[str, str]) -> list[TriggerHit]:
    """All alias occurrences in *text*, ordered by position."""
    raw = text or ""
    tokens = tokenize(raw)
    hits: list[TriggerHit] = []
    for alias, persona_id in trigger_index.items():
        if " " in alias:
            hits.extend(TriggerHit(alias, persona_id, pos) for pos in phrase_positions(raw, alias))
        else:
            hits.extend(TriggerHit(alias, persona_id, tok.position) for tok in tokens if tok.text == alias)
    hits.sort(key=lambda h: (h.position, -len(h.token)))
    return hits


def detect_intents(text: str) -> list[IntentHit]:
    hits: list[IntentHit] = []
    for tok in tokenize(mask_fenced_blocks(text)):
        word = tok.text.lstrip("@")
        for category, keywords in INTENT_KEYWORDS.items():
            if word in keywords:
                hits.append(IntentHit(word, category, tok.position))
    return hits


def parse_request(text: str, trigger_index: Mapping[str, str]) -> Request:
    raw = text or ""
    return Request(
        raw_text=raw,
        triggers=tuple(detect_triggers(raw, trigger_index)),
        code_blocks=tuple(extract_code_blocks(raw)),
        intents=tuple(detect_intents(raw)),
        word_count=word_count(mask_fenced_blocks(raw)),
    )
