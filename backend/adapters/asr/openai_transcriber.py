"""
OpenAI speech-to-text adapter.

Role in the system:
- Receives one flushed segment (raw mu-law @ 8kHz by default)
- Wraps it into a PCM16 WAV container (the API accepts files, not raw codecs)
- Calls /v1/audio/transcriptions once, no retries
- Normalizes the result into a Transcript

Confidence:
    exp(mean(segment.avg_logprob)) clipped to [0, 1]; 1.0 when the
    response carries no per-segment scores.
"""

from __future__ import annotations

import math
from typing import Any

import numpy as np
from openai import AsyncOpenAI

from adapters.asr.base import DownstreamUnavailable, SpeechRecognizer, Transcript
from audio import wav
from audio.mulaw import decode_bytes
from audio.pcm import PcmBuffer
from constants import (
    ASR_MODEL_DEFAULT,
    TELEPHONY_CHANNELS,
    TELEPHONY_ENCODING,
    TELEPHONY_SAMPLE_RATE_HZ,
)


def _field(obj: Any, name: str, default: Any = None) -> Any:
    # SDK objects and plain dicts are both seen in practice
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


def confidence_from_segments(segments: Any) -> float:
    """Average log-probability across segments mapped into [0, 1]."""
    logprobs = [
        float(_field(seg, "avg_logprob"))
        for seg in segments or []
        if _field(seg, "avg_logprob") is not None
    ]
    if not logprobs:
        return 1.0
    value = math.exp(sum(logprobs) / len(logprobs))
    return min(1.0, max(0.0, value))


def segment_to_wav_bytes(audio: bytes, *, sample_rate_hz: int, encoding: str) -> bytes:
    """Containerize raw segment audio as PCM16 WAV."""
    if encoding == TELEPHONY_ENCODING:
        samples = decode_bytes(audio)
    elif encoding == "LINEAR16":
        samples = np.frombuffer(audio[: len(audio) - len(audio) % 2], dtype="<i2")
    else:
        raise ValueError(f"unsupported encoding: {encoding}")

    pcm = PcmBuffer(samples=samples, sample_rate_hz=sample_rate_hz, channels=TELEPHONY_CHANNELS)
    return bytes(wav.write_buffer(pcm))


class OpenAITranscriber(SpeechRecognizer):
    """
    Batch transcription through an injected AsyncOpenAI client.

    The client is created once per process (see server.app) and shared
    across sessions.
    """

    def __init__(
        self,
        *,
        client: AsyncOpenAI,
        model: str = ASR_MODEL_DEFAULT,
        language: str | None = None,
        prompt: str | None = None,
    ) -> None:
        self._client = client
        self._model = model
        self._language = language
        self._prompt = prompt

    async def recognize(
        self,
        mulaw_bytes: bytes,
        *,
        sample_rate_hz: int = TELEPHONY_SAMPLE_RATE_HZ,
        encoding: str = TELEPHONY_ENCODING,
    ) -> Transcript:
        wav_bytes = segment_to_wav_bytes(
            mulaw_bytes, sample_rate_hz=sample_rate_hz, encoding=encoding
        )

        kwargs: dict[str, Any] = {
            "model": self._model,
            "file": ("segment.wav", wav_bytes, "audio/wav"),
            "response_format": "verbose_json",
        }
        if self._language is not None:
            kwargs["language"] = self._language
        if self._prompt is not None:
            kwargs["prompt"] = self._prompt

        try:
            response = await self._client.audio.transcriptions.create(**kwargs)
        except Exception as exc:
            raise DownstreamUnavailable(f"OpenAI transcription failed: {exc}") from exc

        text = (_field(response, "text", "") or "").strip()
        return Transcript(
            text=text,
            confidence=confidence_from_segments(_field(response, "segments")),
            language=_field(response, "language") or self._language,
        )
