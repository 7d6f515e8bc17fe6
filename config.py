from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv


load_dotenv()

SUPPORTED_STORAGE_BACKENDS = {"memory", "json"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return int(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class Settings:
    data_dir: Path
    storage_backend: str
    log_level: str

    mistral_api_key: str
    mistral_api_base: str
    mistral_model: str
    feedback_model: str
    transcription_model: str

    llm_timeout_seconds: float
    llm_max_retries: int
    llm_retry_initial_delay: float
    llm_retry_max_delay: float

    extraction_max_attempts: int
    extraction_initial_delay: float
    extraction_max_delay: float

    reschedule_max_attempts: int
    reschedule_initial_delay: float
    reschedule_max_delay: float

    expiry_sweep_interval_seconds: float
    content_max_tokens: int


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    mistral_model = os.getenv("MISTRAL_MODEL", "mistral-large-latest")
    storage_backend = os.getenv("STORAGE_BACKEND", "json").strip().lower()
    if storage_backend not in SUPPORTED_STORAGE_BACKENDS:
        storage_backend = "json"
    return Settings(
        data_dir=Path(os.getenv("DATA_DIR", "./data")),
        storage_backend=storage_backend,
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        mistral_api_key=os.getenv("MISTRAL_API_KEY", ""),
        mistral_api_base=os.getenv("MISTRAL_API_BASE", "https://api.mistral.ai/v1"),
        mistral_model=mistral_model,
        feedback_model=os.getenv("FEEDBACK_MODEL", mistral_model) or mistral_model,
        transcription_model=os.getenv("TRANSCRIPTION_MODEL", "voxtral-mini-latest"),
        llm_timeout_seconds=_env_float("LLM_TIMEOUT_SECONDS", 45.0),
        llm_max_retries=_env_int("LLM_MAX_RETRIES", 3),
        llm_retry_initial_delay=_env_float("LLM_RETRY_INITIAL_DELAY", 0.8),
        llm_retry_max_delay=_env_float("LLM_RETRY_MAX_DELAY", 10.0),
        extraction_max_attempts=_env_int("EXTRACTION_MAX_ATTEMPTS", 3),
        extraction_initial_delay=_env_float("EXTRACTION_INITIAL_DELAY", 1.0),
        extraction_max_delay=_env_float("EXTRACTION_MAX_DELAY", 5.0),
        reschedule_max_attempts=_env_int("RESCHEDULE_MAX_ATTEMPTS", 3),
        reschedule_initial_delay=_env_float("RESCHEDULE_INITIAL_DELAY", 1.0),
        reschedule_max_delay=_env_float("RESCHEDULE_MAX_DELAY", 30.0),
        expiry_sweep_interval_seconds=_env_float("EXPIRY_SWEEP_INTERVAL_SECONDS", 3600.0),
        content_max_tokens=_env_int("CONTENT_MAX_TOKENS", 2000),
    )
