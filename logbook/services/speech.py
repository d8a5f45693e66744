"""Speech-to-text backend (faster-whisper)."""

import asyncio
import logging
import time
from dataclasses import dataclass
from functools import lru_cache
from io import BytesIO
from typing import Any, Iterable, Optional, Protocol

import faster_whisper
from faster_whisper import BatchedInferencePipeline, WhisperModel

from logbook.core.config import settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SpeechResult:
    """Outcome of one backend call."""

    transcript: str
    confidence: Optional[float] = None
    duration: Optional[float] = None


class TranscriptionBackend(Protocol):
    """
    Capability consumed by the transcription worker.

    transcribe_short is a single request/response call with a duration
    ceiling; transcribe_long has no ceiling and may take much longer.
    """

    async def transcribe_short(
        self,
        audio_data: bytes,
        encoding: str,
        sample_rate: int,
        language_code: str,
    ) -> SpeechResult: ...

    async def transcribe_long(
        self,
        audio_data: bytes,
        encoding: str,
        sample_rate: int,
        language_code: str,
    ) -> SpeechResult: ...


def whisper_language(language_code: str) -> str:
    """BCP-47 code ('en-US') to the ISO 639-1 code Whisper expects ('en')."""
    return language_code.split("-")[0].lower()


class WhisperService:
    """
    Whisper speech-to-text transcription service.

    Uses faster-whisper (CTranslate2). The container is decoded by PyAV, so
    encoding and sample rate are only recorded for diagnostics; the language
    code pins Whisper's language instead of auto-detecting it.
    """

    def __init__(self) -> None:
        """
        Initialize Whisper model with application settings.

        Raises:
            RuntimeError: If model initialization fails
        """
        try:
            self.model_name = settings.WHISPER_MODEL
            self.device = settings.WHISPER_DEVICE
            self.compute_type = settings.WHISPER_COMPUTE_TYPE
            self.batch_size = settings.WHISPER_BATCH_SIZE

            logger.info(
                f"Initializing Whisper model: {self.model_name} "
                f"(device={self.device}, compute_type={self.compute_type})"
            )

            self.model = WhisperModel(
                model_size_or_path=self.model_name,
                device=self.device,
                compute_type=self.compute_type,
            )
            self.batched = BatchedInferencePipeline(model=self.model)

            logger.info("Whisper model loaded successfully")

        except Exception as e:
            logger.error(f"Failed to initialize Whisper model: {e}")
            raise RuntimeError(f"Whisper model initialization failed: {e}") from e

    async def transcribe_short(
        self,
        audio_data: bytes,
        encoding: str,
        sample_rate: int,
        language_code: str,
    ) -> SpeechResult:
        """Single sequential pass; meant for clips up to about a minute."""

        def _transcribe() -> SpeechResult:
            segments, info = self.model.transcribe(
                audio=BytesIO(audio_data),
                language=whisper_language(language_code),
                beam_size=5,
                vad_filter=True,
            )
            return self._collect(segments, info)

        return await self._run("short", _transcribe, audio_data, encoding, sample_rate)

    async def transcribe_long(
        self,
        audio_data: bytes,
        encoding: str,
        sample_rate: int,
        language_code: str,
    ) -> SpeechResult:
        """VAD-chunked batched inference for long recordings."""

        def _transcribe() -> SpeechResult:
            segments, info = self.batched.transcribe(
                BytesIO(audio_data),
                language=whisper_language(language_code),
                batch_size=self.batch_size,
            )
            return self._collect(segments, info)

        return await self._run("long", _transcribe, audio_data, encoding, sample_rate)

    async def _run(
        self,
        mode: str,
        fn: Any,
        audio_data: bytes,
        encoding: str,
        sample_rate: int,
    ) -> SpeechResult:
        if not audio_data:
            raise ValueError("Audio data is empty")

        logger.debug(
            f"Starting {mode}-form transcription "
            f"(size={len(audio_data)} bytes, encoding={encoding}, sample_rate={sample_rate})"
        )
        start_time = time.time()

        # Whisper is CPU/GPU bound
        result = await asyncio.to_thread(fn)

        logger.info(
            f"{mode.capitalize()}-form transcription complete: {len(result.transcript)} chars "
            f"in {time.time() - start_time:.2f}s"
        )
        return result

    @staticmethod
    def _collect(segments: Iterable[Any], info: Any) -> SpeechResult:
        # segments is a lazy generator: iterating it runs the model
        texts = []
        total_confidence = 0.0
        segment_count = 0
        for segment in segments:
            text = segment.text.strip()
            if text:
                texts.append(text)
            total_confidence += segment.avg_logprob
            segment_count += 1

        return SpeechResult(
            transcript=" ".join(texts),
            confidence=total_confidence / segment_count if segment_count > 0 else None,
            duration=info.duration,
        )

    def get_model_name(self) -> str:
        """Get model name for metadata."""
        return f"faster-whisper-{self.model_name}"

    def get_model_version(self) -> str:
        """Get model version for metadata."""
        return f"faster-whisper-{faster_whisper.__version__}"


@lru_cache
def get_whisper_service() -> WhisperService:
    """Get cached Whisper service instance."""
    return WhisperService()


class LazyWhisperBackend:
    """
    TranscriptionBackend that loads the shared Whisper model on first use.

    Request handlers that never transcribe (status, listing, deletion) do
    not pay for the model load, and a model that cannot load surfaces as a
    failed transcription instead of a failed request.
    """

    async def transcribe_short(
        self,
        audio_data: bytes,
        encoding: str,
        sample_rate: int,
        language_code: str,
    ) -> SpeechResult:
        return await get_whisper_service().transcribe_short(audio_data, encoding, sample_rate, language_code)

    async def transcribe_long(
        self,
        audio_data: bytes,
        encoding: str,
        sample_rate: int,
        language_code: str,
    ) -> SpeechResult:
        return await get_whisper_service().transcribe_long(audio_data, encoding, sample_rate, language_code)
