"""
Speech-to-Text Service
Uses AssemblyAI to transcribe recorded consultations from a URL.
"""

import asyncio
import time
from typing import Optional

import httpx
import assemblyai as aai
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from docpilot.config import settings
from docpilot.core.errors import TranscriptionError
from docpilot.core.logging import get_logger, audit_logger
from docpilot.models.responses import TranscriptSegment, TranscriptionResult

logger = get_logger(__name__)

# Network hiccups are retried; provider-side transcription errors are not.
RETRYABLE_EXCEPTIONS = (httpx.TimeoutException, httpx.NetworkError)


class STTService:
    """Service for Speech-to-Text transcription using AssemblyAI."""

    def __init__(self, api_key: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.assemblyai_api_key
        self.base_url = base_url or settings.assemblyai_api_base_url

    def _configure(self):
        if not self.api_key:
            raise TranscriptionError("AssemblyAI API key is not configured.")
        aai.settings.api_key = self.api_key
        aai.settings.base_url = self.base_url
        aai.settings.http_timeout = settings.stt_timeout

    def _build_config(self) -> aai.TranscriptionConfig:
        config_params = {
            "speaker_labels": settings.stt_speaker_labels,
            "punctuate": True,
            "format_text": True,
        }
        if settings.stt_language_detection:
            config_params["language_detection"] = True
        return aai.TranscriptionConfig(**config_params)

    @retry(
        wait=wait_exponential(multiplier=1, min=2, max=10),
        stop=stop_after_attempt(settings.max_retries),
        retry=retry_if_exception_type(RETRYABLE_EXCEPTIONS),
        reraise=True,
        before_sleep=lambda retry_state: logger.warning(
            f"Retrying AssemblyAI API call, attempt {retry_state.attempt_number}..."
        ),
    )
    async def transcribe_url(self, request_id: str, audio_url: str) -> TranscriptionResult:
        """
        Transcribes the audio behind audio_url and returns our internal result model.
        """
        self._configure()
        logger.info(f"[{request_id}] Calling AssemblyAI for transcription of {audio_url}")

        started = time.time()
        transcriber = aai.Transcriber(config=self._build_config())
        # The SDK call blocks until the transcript is done.
        transcript = await asyncio.to_thread(transcriber.transcribe, audio_url)
        elapsed_ms = int((time.time() - started) * 1000)

        failed = transcript.status == aai.TranscriptStatus.error
        audit_logger.log_external_api_call(
            request_id=request_id,
            service="assemblyai",
            operation="transcribe",
            success=not failed,
            response_time_ms=elapsed_ms,
        )
        if failed:
            logger.error(f"[{request_id}] AssemblyAI transcription failed: {transcript.error}")
            raise TranscriptionError(f"AssemblyAI transcription failed: {transcript.error}")

        logger.info(f"[{request_id}] AssemblyAI transcript created with ID: {transcript.id}")
        return self.create_transcription_result(transcript)

    def create_transcription_result(self, transcript: aai.Transcript) -> TranscriptionResult:
        """
        Converts a raw AssemblyAI transcript into our internal TranscriptionResult model.
        """
        segments = [
            TranscriptSegment(
                start_time=utt.start / 1000.0,
                end_time=utt.end / 1000.0,
                text=utt.text,
                speaker=utt.speaker,
            )
            for utt in (transcript.utterances or [])
        ]

        lang_code = (transcript.json_response or {}).get("language_code")

        return TranscriptionResult(
            provider_transcript_id=transcript.id,
            full_text=(transcript.text or "").strip(),
            segments=segments,
            language_detected=str(lang_code) if lang_code else None,
            confidence=transcript.confidence,
        )
