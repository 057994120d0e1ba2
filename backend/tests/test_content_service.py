"""Tests for content_service.py (LLM content generator) over httpx.MockTransport."""
import json

import httpx
import pytest

from content_service import (
    ContentService,
    LLMConfig,
    build_section_prompt,
    is_llm_error,
    parse_llm_error,
    split_sections,
)
from errors import MissingSectionContent
from intent import parse_request
from persona_registry import Mode

ANSWER = (
    "Here you go.\n"
    "## Solution\n"
    "```python\n"
    "## not a heading\n"
    "def add(a: int, b: int) -> int:\n"
    "    return a + b\n"
    "```\n"
    "## Usage\n"
    "Call add(1, 2)."
)


def _service(handler, tmp_path, **overrides):
    options = {
        "api_url": "http://localhost:11434/api/generate",
        "min_call_interval_sec": 0.0,
        "retry_backoff_base_sec": 0.0,
        "rate_limit_cooldown_sec": 0.0,
        "max_retry_attempts": 3,
    }
    options.update(overrides)
    service = ContentService(config=LLMConfig(**options), transport=httpx.MockTransport(handler))
    service.call_log_path = tmp_path / "llm_call_log.txt"
    return service


class TestSplitSections:
    """Cutting a markdown answer into labelled sections."""

    def test_headings_inside_fences_are_content(self):
        parts = split_sections(ANSWER, ["Solution", "Usage"])
        assert parts["Solution"].startswith("```python\n## not a heading")
        assert parts["Solution"].endswith("```")
        assert parts["Usage"] == "Call add(1, 2)."

    def test_preamble_dropped_and_labels_matched_loosely(self):
        parts = split_sections("intro\n### **usage**:\nRun it.", ["Usage"])
        assert parts == {"Usage": "Run it."}

    def test_missing_heading_absent_from_result(self):
        assert split_sections("## Usage\nRun it.", ["Solution", "Usage"]) == {"Usage": "Run it."}


class TestPrompt:
    """Prompt construction."""

    def test_prompt_lists_sections_and_feedback(self, registry):
        persona = registry.get("backend_engineer")
        request = parse_request("@back add a health endpoint", registry.trigger_index)
        sections = registry.sections_for(persona, Mode.DIRECT)
        system_prompt, prompt = build_section_prompt(
            request, persona, Mode.DIRECT, sections, ["no-apology-phrases: contains an apology"]
        )
        assert "Backend Engineer" in system_prompt
        assert "DIRECT" in system_prompt
        assert prompt.index("## Contract") < prompt.index("## Solution") < prompt.index("## Error Handling")
        assert "@back add a health endpoint" in prompt
        assert "no-apology-phrases" in prompt


class TestGenerate:
    """HTTP round trips against the provider."""

    @pytest.mark.asyncio
    async def test_generic_provider_payload(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"response": "  hello  "})

        service = _service(handler, tmp_path)
        text = await service.generate("hi", system_prompt="be brief")
        assert text == "hello"
        assert seen["body"]["stream"] is False
        assert seen["body"]["prompt"].startswith("be brief")
        assert "messages" not in seen["body"]

    @pytest.mark.asyncio
    async def test_openai_compatible_payload(self, tmp_path):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["auth"] = request.headers.get("authorization")
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={"choices": [{"message": {"content": "ok"}}]})

        service = _service(
            handler,
            tmp_path,
            api_url="https://api.openai.com/v1/chat/completions",
            provider="openai",
            api_key="sk-test",
        )
        assert await service.generate("hi", system_prompt="sys") == "ok"
        assert seen["auth"] == "Bearer sk-test"
        assert [m["role"] for m in seen["body"]["messages"]] == ["system", "user"]

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, tmp_path):
        statuses = [503, 200]

        def handler(request: httpx.Request) -> httpx.Response:
            code = statuses.pop(0)
            return httpx.Response(code, json={"response": "recovered"} if code == 200 else {})

        service = _service(handler, tmp_path)
        assert await service.generate("hi") == "recovered"
        assert statuses == []
        log = service.call_log_path.read_text(encoding="utf-8")
        assert "status=retry" in log
        assert "status=ok" in log

    @pytest.mark.asyncio
    async def test_rate_limit_returns_sentinel(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, headers={"retry-after": "0"})

        service = _service(handler, tmp_path, max_retry_attempts=2)
        result = await service.generate("hi")
        assert is_llm_error(result)
        assert parse_llm_error(result)["type"] == "rate_limit"

    @pytest.mark.asyncio
    async def test_transport_error_returns_sentinel(self, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        service = _service(handler, tmp_path)
        result = await service.generate("hi")
        assert parse_llm_error(result)["type"] == "exception"


class TestGenerateSections:
    """ContentGenerator implementation."""

    @pytest.mark.asyncio
    async def test_sections_split_by_label(self, registry, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json={"response": ANSWER})

        service = _service(handler, tmp_path)
        persona = registry.default_persona
        request = parse_request("write an add function", registry.trigger_index)
        contents = await service.generate_sections(
            request, persona, Mode.DIRECT, registry.sections_for(persona, Mode.DIRECT)
        )
        assert set(contents) == {"Solution", "Usage"}

    @pytest.mark.asyncio
    async def test_provider_failure_raises_missing_content(self, registry, tmp_path):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(500)

        service = _service(handler, tmp_path, max_retry_attempts=1)
        persona = registry.default_persona
        request = parse_request("write an add function", registry.trigger_index)
        with pytest.raises(MissingSectionContent) as exc:
            await service.generate_sections(
                request, persona, Mode.DIRECT, registry.sections_for(persona, Mode.DIRECT)
            )
        assert exc.value.sections == ["Solution"]
        assert exc.value.reason == "http_error"
