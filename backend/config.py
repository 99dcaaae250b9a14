"""
Application configuration.

Responsibilities:
- Load deployment-specific configuration
- Read environment variables
- Provide a typed, immutable config object

Non-responsibilities:
- No pipeline logic
- No protocol constants (see constants.py)
- No runtime mutation
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from constants import (
    ASR_MODEL_DEFAULT,
    ASR_PROVIDERS,
    FLUSH_INTERVAL_MS,
    FLUSH_MIN_FRAMES,
    FLUSH_MIN_GAP_MS,
    SEGMENT_WORKERS_DEFAULT,
    WAV_GAIN_DEFAULT,
    FlushPolicy,
)


class ConfigError(ValueError):
    """Raised when an environment variable holds an unusable value."""


def _int_env(env: Mapping[str, str], name: str, default: int) -> int:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from e


def _float_env(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from e


def _optional_env(env: Mapping[str, str], name: str) -> str | None:
    value = env.get(name)
    if value is None or value.strip() == "":
        return None
    return value


@dataclass(frozen=True)
class AppConfig:
    """
    Immutable application configuration.

    Constructed once at process startup and passed to server.app.create_app.
    """

    # ------------------------------------------------------------------
    # Environment
    # ------------------------------------------------------------------

    env: str = "dev"

    # ------------------------------------------------------------------
    # ASR
    # ------------------------------------------------------------------

    asr_provider: str = "none"
    asr_model: str = ASR_MODEL_DEFAULT
    asr_language: str | None = None
    openai_api_key: str | None = None

    # ------------------------------------------------------------------
    # Segmentation
    # ------------------------------------------------------------------

    flush_interval_ms: int = FLUSH_INTERVAL_MS
    flush_min_frames: int = FLUSH_MIN_FRAMES
    flush_min_gap_ms: int = FLUSH_MIN_GAP_MS
    segment_workers: int = SEGMENT_WORKERS_DEFAULT

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    wav_output_dir: str | None = None
    wav_gain: float = WAV_GAIN_DEFAULT
    capture_dir: str | None = None

    # ------------------------------------------------------------------
    # Telephony
    # ------------------------------------------------------------------

    media_stream_url: str | None = None

    def __post_init__(self) -> None:
        if self.asr_provider not in ASR_PROVIDERS:
            raise ConfigError(
                f"ASR_PROVIDER must be one of {', '.join(ASR_PROVIDERS)}, got {self.asr_provider!r}"
            )
        if self.asr_provider == "openai" and not self.openai_api_key:
            raise ConfigError("ASR_PROVIDER=openai requires OPENAI_API_KEY")
        if self.segment_workers < 1:
            raise ConfigError("SEGMENT_WORKERS must be >= 1")
        if self.wav_gain < 0:
            raise ConfigError("WAV_GAIN must be >= 0")
        # Validates interval / frame / gap bounds
        self.flush_policy()

    def flush_policy(self) -> FlushPolicy:
        try:
            return FlushPolicy(
                interval_ms=self.flush_interval_ms,
                min_frames=self.flush_min_frames,
                min_gap_ms=self.flush_min_gap_ms,
            )
        except ValueError as e:
            raise ConfigError(str(e)) from e

    # ------------------------------------------------------------------
    # Factory
    # ------------------------------------------------------------------

    @staticmethod
    def load_from_env(env: Mapping[str, str] | None = None) -> AppConfig:
        """
        Load configuration from environment variables.

        Raises:
            ConfigError if a variable holds an unusable value.
        """
        env = os.environ if env is None else env
        return AppConfig(
            env=env.get("ENV", "dev"),

            asr_provider=env.get("ASR_PROVIDER", "none").strip().lower(),
            asr_model=env.get("ASR_MODEL", ASR_MODEL_DEFAULT),
            asr_language=_optional_env(env, "ASR_LANGUAGE"),
            openai_api_key=_optional_env(env, "OPENAI_API_KEY"),

            flush_interval_ms=_int_env(env, "FLUSH_INTERVAL_MS", FLUSH_INTERVAL_MS),
            flush_min_frames=_int_env(env, "FLUSH_MIN_FRAMES", FLUSH_MIN_FRAMES),
            flush_min_gap_ms=_int_env(env, "FLUSH_MIN_GAP_MS", FLUSH_MIN_GAP_MS),
            segment_workers=_int_env(env, "SEGMENT_WORKERS", SEGMENT_WORKERS_DEFAULT),

            wav_output_dir=_optional_env(env, "WAV_OUTPUT_DIR"),
            wav_gain=_float_env(env, "WAV_GAIN", WAV_GAIN_DEFAULT),
            capture_dir=_optional_env(env, "CAPTURE_DIR"),

            media_stream_url=_optional_env(env, "MEDIA_STREAM_URL"),
        )
