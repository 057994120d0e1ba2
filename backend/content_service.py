"""
LLM-backed content generator for assembled responses.
"""

import asyncio
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Mapping, Optional, Sequence

import httpx
from pydantic import BaseModel, ConfigDict

import settings
from errors import MissingSectionContent
from intent import Request
from persona_registry import Mode, OutputSection, Persona, SectionKind

# --------------- LLM Error helpers ---------------
LLM_ERROR_PREFIX = "__LLM_ERR__"

HEADING_REGEX = re.compile(r"^\s{0,3}#{1,3}\s+(.+?)\s*#*\s*$")
FENCE_REGEX = re.compile(r"^\s*```")

KIND_INSTRUCTIONS = {
    SectionKind.HEADING_BLOCK: "short prose paragraph(s)",
    SectionKind.CHECKLIST: "one item per line, each line starting with '- '",
    SectionKind.FENCED_CODE: "one fenced code block with a language tag",
    SectionKind.TABLE: "a markdown table with a header row",
}

OUTPUT_RULES = (
    "Never leave placeholders: no TODO, FIXME, '...', or 'implementation details here'.",
    "Never apologise or hedge.",
    "Code must declare parameter and return types.",
    "Code that does I/O, parsing or network calls must handle errors explicitly; no empty catch/except.",
    "Use exactly the section headings requested, in the requested order, and nothing else.",
)


def _llm_error(error_type: str, detail: str = "") -> str:
    """Return a sentinel string indicating an LLM call failure."""
    return f"{LLM_ERROR_PREFIX}{error_type}|{detail}"


def is_llm_error(content: str) -> bool:
    return bool(content) and content.startswith(LLM_ERROR_PREFIX)


def parse_llm_error(content: str) -> dict:
    """Parse an LLM error sentinel into {type, detail}."""
    if not is_llm_error(content):
        return {}
    rest = content[len(LLM_ERROR_PREFIX):]
    parts = rest.split("|", 1)
    return {"type": parts[0], "detail": parts[1] if len(parts) > 1 else ""}


class LLMConfig(BaseModel):
    """Model runtime configuration."""

    model_config = ConfigDict(protected_namespaces=())

    model_name: str = "llama3:70b"
    api_url: Optional[str] = None
    api_key: Optional[str] = None
    provider: Optional[str] = None  # ollama | groq | openai | generic
    temperature: float = 0.4
    max_tokens: int = 1800
    top_p: float = 0.9
    max_retry_attempts: int = 4
    retry_backoff_base_sec: float = 1.5
    rate_limit_cooldown_sec: float = 3.0
    min_call_interval_sec: float = 0.5
    timeout_sec: float = 75.0


def config_from_settings() -> LLMConfig:
    return LLMConfig(
        api_url=settings.LLM_API_URL,
        api_key=settings.LLM_API_KEY,
        model_name=settings.LLM_MODEL,
        provider=settings.LLM_PROVIDER,
        temperature=settings.LLM_TEMPERATURE,
        max_tokens=settings.LLM_MAX_TOKENS,
        max_retry_attempts=settings.LLM_MAX_RETRY_ATTEMPTS,
        retry_backoff_base_sec=settings.LLM_RETRY_BACKOFF_BASE_SEC,
        rate_limit_cooldown_sec=settings.LLM_RATE_LIMIT_COOLDOWN_SEC,
        min_call_interval_sec=settings.LLM_MIN_CALL_INTERVAL_SEC,
    )


def build_section_prompt(
    request: Request,
    persona: Persona,
    mode: Mode,
    sections: Sequence[OutputSection],
    feedback: Sequence[str] = (),
) -> tuple[str, str]:
    """Return (system_prompt, prompt) asking for *sections* as '## Label' blocks."""
    system_prompt = (
        f"You are {persona.name}. {persona.description}\n"
        f"Response mode: {mode.value}.\n"
        "Rules:\n" + "\n".join(f"- {rule}" for rule in OUTPUT_RULES)
    )
    layout = "\n".join(
        f"## {s.label}\n({KIND_INSTRUCTIONS[s.kind]}{'' if s.required else ', optional'})"
        for s in sections
    )
    prompt = (
        f"Request:\n{request.raw_text.strip()}\n\n"
        f"Answer using exactly these sections, in this order:\n\n{layout}\n"
    )
    if feedback:
        prompt += "\nThe previous draft was rejected for:\n" + "\n".join(f"- {f}" for f in feedback) + "\n"
    return system_prompt, prompt


def split_sections(text: str, labels: Sequence[str]) -> dict[str, str]:
    """Cut a markdown answer at headings that match *labels*. Headings inside code fences are ignored."""
    wanted = {label.lower(): label for label in labels}
    out: dict[str, list[str]] = {}
    current: Optional[str] = None
    in_fence = False
    for line in (text or "").splitlines():
        if FENCE_REGEX.match(line):
            in_fence = not in_fence
        elif not in_fence:
            m = HEADING_REGEX.match(line)
            if m:
                key = m.group(1).strip().strip("*:").strip().lower()
                if key in wanted:
                    current = wanted[key]
                    out.setdefault(current, [])
                    continue
        if current is not None:
            out[current].append(line)
    return {label: "\n".join(lines).strip() for label, lines in out.items()}


class ContentService:
    """Section content generation over an HTTP LLM provider."""

    def __init__(self, config: Optional[LLMConfig] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config or config_from_settings()
        self.call_log_path = settings.LLM_CALL_LOG
        self._transport = transport
        self._rate_limited_until_ts = 0.0
        self._throttle_lock = asyncio.Lock()
        self._last_call_ts = 0.0

    def _append_call_log(self, stage: str, status: str, detail: str = "") -> None:
        try:
            p = Path(self.call_log_path)
            p.parent.mkdir(parents=True, exist_ok=True)
            ts = datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
            line = f"[{ts}] stage={stage} status={status} model={self.config.model_name} detail={detail}\n"
            with open(p, "a", encoding="utf-8") as f:
                f.write(line)
        except Exception:
            # Logging must never block generation path.
            pass

    @staticmethod
    def _parse_retry_after(response: httpx.Response) -> float:
        """Extract wait time from rate-limit headers."""
        ra = response.headers.get("retry-after", "")
        if ra:
            try:
                return float(ra)
            except ValueError:
                pass
        # x-ratelimit-reset-* values look like "1m26.4s", "305ms", "6.5s"
        for hdr in ("x-ratelimit-reset-tokens", "x-ratelimit-reset-requests"):
            val = response.headers.get(hdr, "")
            if not val:
                continue
            total = 0.0
            m = re.search(r"(\d+)m(?!s)", val)
            if m:
                total += int(m.group(1)) * 60
            ms = re.search(r"(\d+)ms", val)
            if ms:
                total += int(ms.group(1)) / 1000.0
            s = re.search(r"(?<!m)([\d.]+)s\b", val)
            if s:
                try:
                    total += float(s.group(1))
                except ValueError:
                    pass
            if total > 0:
                return total
        return 2.0

    def _is_openai_compatible(self) -> bool:
        provider = (self.config.provider or "").lower().strip()
        api_url = self.config.api_url or ""
        return (
            provider in ("groq", "openai")
            or "api.groq.com/openai/v1" in api_url
            or "api.openai.com/v1" in api_url
        )

    def _payload(self, prompt: str, system_prompt: Optional[str], temp: float, token_limit: int) -> dict:
        if self._is_openai_compatible():
            return {
                "model": self.config.model_name,
                "messages": [
                    {"role": "system", "content": system_prompt or "You are a helpful assistant."},
                    {"role": "user", "content": prompt},
                ],
                "temperature": temp,
                "max_tokens": token_limit,
                "top_p": self.config.top_p,
            }
        full_prompt = f"{system_prompt}\n\nUser: {prompt}\n\nAssistant:" if system_prompt else prompt
        return {
            "model": self.config.model_name,
            "prompt": full_prompt,
            "stream": False,
            "options": {
                "temperature": temp,
                "num_predict": token_limit,
                "top_p": self.config.top_p,
            },
        }

    def _headers(self) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def _extract_text(self, result) -> str:
        if self._is_openai_compatible():
            choices = result.get("choices", []) if isinstance(result, dict) else []
            if choices:
                return (choices[0].get("message", {}).get("content") or "").strip()
            return ""
        if isinstance(result, dict):
            return (result.get("response") or "").strip()
        return str(result).strip()

    async def generate(
        self,
        prompt: str,
        system_prompt: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate text from the configured provider. Failures come back as an error sentinel."""
        temp = self.config.temperature if temperature is None else temperature
        token_limit = self.config.max_tokens if max_tokens is None else max_tokens
        attempts = max(1, self.config.max_retry_attempts)

        # Throttle: serialize LLM calls with minimum interval to respect rate limits
        async with self._throttle_lock:
            now_ts = time.time()
            elapsed = now_ts - self._last_call_ts
            if elapsed < self.config.min_call_interval_sec:
                await asyncio.sleep(self.config.min_call_interval_sec - elapsed)

            now_ts = time.time()
            if now_ts < self._rate_limited_until_ts:
                wait_left = round(self._rate_limited_until_ts - now_ts, 2)
                self._append_call_log("request", "wait", f"rate_limit_cooldown wait_sec={wait_left}")
                await asyncio.sleep(wait_left)
                self._rate_limited_until_ts = 0.0

            try:
                payload = self._payload(prompt, system_prompt, temp, token_limit)
                provider = "openai_compatible" if self._is_openai_compatible() else "generic"
                self._append_call_log("request", "start", f"provider={provider}")
                async with httpx.AsyncClient(timeout=self.config.timeout_sec, transport=self._transport) as client:
                    for attempt in range(attempts):
                        response = await client.post(self.config.api_url or "", json=payload, headers=self._headers())
                        if response.status_code == 200:
                            self._append_call_log("request", "ok", f"attempt={attempt+1} http=200")
                            self._rate_limited_until_ts = 0.0
                            return self._extract_text(response.json())
                        if response.status_code in (429, 500, 502, 503, 504) and attempt < (attempts - 1):
                            if response.status_code == 429:
                                retry_after = self._parse_retry_after(response)
                                backoff = max(retry_after, self.config.retry_backoff_base_sec * (2 ** attempt))
                            else:
                                backoff = self.config.retry_backoff_base_sec * (attempt + 1)
                            self._append_call_log("request", "retry", f"attempt={attempt+1} http={response.status_code} backoff={backoff:.1f}s")
                            await asyncio.sleep(backoff)
                            continue
                        self._append_call_log("request", "fail", f"attempt={attempt+1} http={response.status_code}")
                        if response.status_code == 429:
                            retry_after = self._parse_retry_after(response)
                            self._rate_limited_until_ts = time.time() + max(self.config.rate_limit_cooldown_sec, retry_after)
                            return _llm_error("rate_limit", f"http=429 after {attempt+1} attempts")
                        return _llm_error("http_error", f"http={response.status_code}")
                return _llm_error("exhausted", f"attempts={attempts}")
            except (httpx.HTTPError, ValueError) as exc:
                self._append_call_log("request", "error", str(exc))
                print(f"LLM API error: {exc}")
                return _llm_error("exception", str(exc)[:200])
            finally:
                self._last_call_ts = time.time()

    async def generate_sections(
        self,
        request: Request,
        persona: Persona,
        mode: Mode,
        sections: Sequence[OutputSection],
        feedback: Sequence[str] = (),
    ) -> Mapping[str, str]:
        labels = [s.label for s in sections]
        system_prompt, prompt = build_section_prompt(request, persona, mode, sections, feedback)
        raw = await self.generate(prompt=prompt, system_prompt=system_prompt)
        if is_llm_error(raw):
            err = parse_llm_error(raw)
            raise MissingSectionContent([s.label for s in sections if s.required] or labels, reason=err.get("type", ""))
        return split_sections(raw, labels)


content_service = ContentService()
