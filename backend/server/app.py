"""
FastAPI app factory.

Responsibilities:
- Create and configure FastAPI app
- Build the process-wide pipeline (dispatcher, session manager, gateway)
- Initialize shared resources (OpenAI client) when ASR is enabled
- Register routes
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI
from openai import AsyncOpenAI

from adapters.asr.base import SpeechRecognizer
from adapters.asr.openai_transcriber import OpenAITranscriber
from adapters.storage.base import WavSink
from adapters.storage.wav_file import WavFileSink
from config import AppConfig
from observability.logger import log_event
from pipeline.dispatcher import SegmentDispatcher
from pipeline.processor import SegmentPipeline
from server.routes import register_routes
from session.capture import CaptureRecorder
from session.gateway import MediaStreamGateway
from session.lifecycle import SessionLifecycleManager


def build_recognizer(config: AppConfig, client: Optional[AsyncOpenAI]) -> Optional[SpeechRecognizer]:
    """Recognizer selected by ASR_PROVIDER; None disables transcription."""
    if config.asr_provider != "openai" or client is None:
        return None
    return OpenAITranscriber(
        client=client,
        model=config.asr_model,
        language=config.asr_language,
    )


def build_sinks(config: AppConfig) -> list[WavSink]:
    sinks: list[WavSink] = []
    if config.wav_output_dir:
        sinks.append(WavFileSink(config.wav_output_dir))
    return sinks


def create_app(
    config: AppConfig | None = None,
    *,
    recognizer: SpeechRecognizer | None = None,
    sinks: list[WavSink] | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    recognizer / sinks override what the config would build (tests inject
    fakes here).
    """
    config = config or AppConfig.load_from_env()

    openai_client: Optional[AsyncOpenAI] = None
    if recognizer is None and config.asr_provider == "openai":
        # One client per process
        openai_client = AsyncOpenAI(api_key=config.openai_api_key)
        recognizer = build_recognizer(config, openai_client)

    pipeline = SegmentPipeline(
        recognizer=recognizer,
        sinks=build_sinks(config) if sinks is None else sinks,
        gain=config.wav_gain,
    )
    dispatcher = SegmentDispatcher(pipeline, workers=config.segment_workers)
    sessions = SessionLifecycleManager(
        on_segment=dispatcher.submit,
        policy=config.flush_policy(),
    )
    capture = CaptureRecorder(config.capture_dir) if config.capture_dir else None
    gateway = MediaStreamGateway(sessions=sessions, capture=capture)

    @asynccontextmanager
    async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
        dispatcher.start()
        log_event({
            "event_type": "SERVER_STARTED",
            "env": config.env,
            "asr_provider": config.asr_provider if recognizer is not None else "none",
            "wav_output_dir": config.wav_output_dir,
            "capture_dir": config.capture_dir,
            "segment_workers": config.segment_workers,
        })

        yield

        # Shutdown: final flush of every live call, then drain the queue
        stopped = sessions.shutdown()
        await dispatcher.close(drain=True)
        if openai_client is not None:
            await openai_client.close()
        log_event({
            "event_type": "SERVER_STOPPED",
            "sessions_stopped": stopped,
            "segments_processed": dispatcher.processed,
            "segments_failed": dispatcher.failed,
        })

    app = FastAPI(title="Telephony Audio Pipeline", lifespan=lifespan)

    app.state.config = config
    app.state.dispatcher = dispatcher
    app.state.sessions = sessions
    app.state.gateway = gateway

    register_routes(app)

    return app
