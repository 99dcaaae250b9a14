"""
Filesystem WAV sink.

Writes each segment to `<output_dir>/<session_id>_<index:04d>.wav`.
File IO runs in a worker thread so the event loop keeps ingesting.
"""

from __future__ import annotations

import asyncio
import re
from pathlib import Path

from adapters.asr.base import DownstreamUnavailable
from adapters.storage.base import WavSink
from audio.frames import Segment
from audio.wav import WavArtifact

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]")


def segment_filename(segment: Segment) -> str:
    """Stable, filesystem-safe name for a segment."""
    safe_id = _UNSAFE_CHARS.sub("_", segment.session_id) or "session"
    return f"{safe_id}_{segment.index:04d}.wav"


class WavFileSink(WavSink):
    """Persist artifacts under a single directory."""

    name = "wav_file"

    def __init__(self, output_dir: str | Path) -> None:
        self._output_dir = Path(output_dir)
        self.written: list[Path] = []

    @property
    def output_dir(self) -> Path:
        return self._output_dir

    async def consume(self, artifact: WavArtifact, segment: Segment) -> None:
        path = self._output_dir / segment_filename(segment)
        try:
            await asyncio.to_thread(self._write, path, bytes(artifact))
        except OSError as exc:
            raise DownstreamUnavailable(f"failed to write {path}: {exc}") from exc
        self.written.append(path)

    def _write(self, path: Path, blob: bytes) -> None:
        self._output_dir.mkdir(parents=True, exist_ok=True)
        path.write_bytes(blob)
