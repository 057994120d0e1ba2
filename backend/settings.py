"""Environment configuration for the router service.

Values are read once at import. backend/.env is loaded without overriding
variables already present in the process environment.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BACKEND_DIR = Path(__file__).resolve().parent

load_dotenv(dotenv_path=BACKEND_DIR / ".env", override=False)


def _env_int(name: str, default: int, min_value: int, max_value: int) -> int:
    raw = os.getenv(name)
    try:
        value = int(raw) if raw not in (None, "") else default
    except Exception:
        value = default
    return max(min_value, min(max_value, value))


def _env_float(name: str, default: float, min_value: float, max_value: float) -> float:
    raw = os.getenv(name)
    try:
        value = float(raw) if raw not in (None, "") else default
    except Exception:
        value = default
    return max(min_value, min(max_value, value))


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw in (None, ""):
        return default
    return str(raw).strip().lower() in ("1", "true", "yes", "on")


def _env_path(name: str, default: Path) -> Path:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    path = Path(raw)
    return path if path.is_absolute() else BACKEND_DIR / path


# Router
ROUTER_REGISTRY_PATH = _env_path("ROUTER_REGISTRY_PATH", BACKEND_DIR / "persona_registry.json")
ROUTER_MAX_REGENERATIONS_LIMIT = 5
ROUTER_MAX_REGENERATIONS = _env_int("ROUTER_MAX_REGENERATIONS", 2, 0, ROUTER_MAX_REGENERATIONS_LIMIT)
ROUTER_DIRECT_MAX_WORDS = _env_int("ROUTER_DIRECT_MAX_WORDS", 25, 5, 120)

# Telemetry
ROUTER_TELEMETRY_ENABLED = _env_bool("ROUTER_TELEMETRY_ENABLED", True)
ROUTER_TELEMETRY_LOG = _env_path("ROUTER_TELEMETRY_LOG", BACKEND_DIR / "router_telemetry.log")

# Content provider
LLM_API_URL = os.getenv("LLM_API_URL", "http://localhost:11434/api/generate")
LLM_API_KEY = os.getenv("LLM_API_KEY")
LLM_MODEL = os.getenv("LLM_MODEL", "llama3:70b")
LLM_PROVIDER = os.getenv("LLM_PROVIDER")
LLM_TEMPERATURE = _env_float("LLM_TEMPERATURE", 0.4, 0.0, 2.0)
LLM_MAX_TOKENS = _env_int("LLM_MAX_TOKENS", 1800, 200, 8000)
LLM_MAX_RETRY_ATTEMPTS = _env_int("LLM_MAX_RETRY_ATTEMPTS", 4, 1, 6)
LLM_RETRY_BACKOFF_BASE_SEC = _env_float("LLM_RETRY_BACKOFF_BASE_SEC", 1.5, 0.0, 5.0)
LLM_RATE_LIMIT_COOLDOWN_SEC = _env_float("LLM_RATE_LIMIT_COOLDOWN_SEC", 3.0, 0.0, 60.0)
LLM_MIN_CALL_INTERVAL_SEC = _env_float("LLM_MIN_CALL_INTERVAL_SEC", 0.5, 0.0, 10.0)
LLM_CALL_LOG = _env_path("LLM_CALL_LOG", BACKEND_DIR / "llm_call_log.txt")
