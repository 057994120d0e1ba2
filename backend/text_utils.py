"""Low-level text helpers used across the router.

No dependency on schemas, registry, or any other project module.
"""

import re
from dataclasses import dataclass
from typing import Optional

TOKEN_REGEX = re.compile(r"(?<![\w@])@?[A-Za-z0-9][A-Za-z0-9_\-]*")
FENCED_BLOCK_REGEX = re.compile(r"```[ \t]*([\w+#.\-]*)[^\n]*\n(.*?)```", re.DOTALL)
INLINE_CODE_REGEX = re.compile(r"`([^`\n]+)`")
CALL_EXPRESSION_REGEX = re.compile(r"\b[A-Za-z_][\w.]*\([^()\n]*\)")


@dataclass(frozen=True)
class Token:
    text: str
    position: int


@dataclass(frozen=True)
class CodeBlock:
    language: str
    body: str
    fenced: bool = True


def normalize_whitespace(text: str) -> str:
    return " ".join((text or "").split()).strip()


def split_sentences(text: str) -> list[str]:
    parts = []
    current = ""
    for ch in text or "":
        current += ch
        if ch in ".!?\n":
            if current.strip():
                parts.append(current.strip())
            current = ""
    if current.strip():
        parts.append(current.strip())
    return parts


def word_count(text: str) -> int:
    return len([w for w in (text or "").replace("\n", " ").split(" ") if w.strip()])


def tokenize(text: str) -> list[Token]:
    """Lower-cased word tokens with their character offsets. A leading '@' is kept."""
    return [Token(m.group(0).lower(), m.start()) for m in TOKEN_REGEX.finditer(text or "")]


def phrase_positions(text: str, phrase: str) -> list[int]:
    """Offsets where *phrase* occurs as whole words, case-insensitive."""
    words = normalize_whitespace(phrase).lower().split(" ")
    if not words or not words[0]:
        return []
    pattern = r"(?<![\w@])" + r"\s+".join(re.escape(w) for w in words) + r"(?![\w])"
    return [m.start() for m in re.finditer(pattern, (text or "").lower())]


def extract_fenced_blocks(text: str) -> list[CodeBlock]:
    return [
        CodeBlock(language=(m.group(1) or "").lower(), body=m.group(2))
        for m in FENCED_BLOCK_REGEX.finditer(text or "")
    ]


def mask_fenced_blocks(text: str) -> str:
    """Blank out fenced blocks, keeping every other character at its original offset."""
    return FENCED_BLOCK_REGEX.sub(lambda m: " " * len(m.group(0)), text or "")


def extract_code_blocks(text: str) -> list[CodeBlock]:
    """Fenced blocks first, then inline backtick spans and bare call expressions from prose."""
    blocks = extract_fenced_blocks(text)
    prose = mask_fenced_blocks(text)
    for m in INLINE_CODE_REGEX.finditer(prose):
        blocks.append(CodeBlock(language="", body=m.group(1), fenced=False))
    prose = INLINE_CODE_REGEX.sub(" ", prose)
    for m in CALL_EXPRESSION_REGEX.finditer(prose):
        blocks.append(CodeBlock(language="", body=m.group(0), fenced=False))
    return blocks


def unfence(text: str) -> tuple[Optional[str], str]:
    """Return (language, body) when *text* is one fenced block, else (None, text)."""
    raw = (text or "").strip()
    m = FENCED_BLOCK_REGEX.fullmatch(raw)
    if not m:
        return None, raw
    return (m.group(1) or "").lower(), m.group(2).rstrip("\n")
