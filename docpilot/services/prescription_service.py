"""
Transcription -> prescription pipeline
"""

from typing import Optional

from docpilot.core.errors import TranscriptionError
from docpilot.core.logging import get_logger
from docpilot.models.responses import Prescription, TranscriptionResult
from docpilot.services.llm_service import LLMService
from docpilot.services.stt_service import STTService

logger = get_logger(__name__)


class EmptyTranscriptError(TranscriptionError):
    """The provider returned no usable text."""


def format_transcript(transcript: TranscriptionResult) -> str:
    """Speaker-labelled lines when diarization is available, the plain text otherwise."""
    if not any(segment.speaker for segment in transcript.segments):
        return transcript.full_text
    return "\n".join(
        f"Speaker {segment.speaker or '?'}: {segment.text}" for segment in transcript.segments
    )


class PrescriptionService:
    """Transcribes a consultation and turns it into a prescription, in that order."""

    def __init__(self, stt_service: Optional[STTService] = None, llm_service: Optional[LLMService] = None):
        self.stt_service = stt_service or STTService()
        self.llm_service = llm_service or LLMService()

    async def prescribe(self, request_id: str, audio_url: str) -> Prescription:
        transcript = await self.stt_service.transcribe_url(request_id=request_id, audio_url=audio_url)
        if not transcript.full_text:
            logger.warning(f"[{request_id}] Transcription result is empty")
            raise EmptyTranscriptError("Received empty or malformed transcription.")

        logger.info(
            f"[{request_id}] Transcription complete: {len(transcript.full_text)} characters, "
            f"{len(transcript.segments)} segment(s), language={transcript.language_detected or 'unknown'}, "
            f"confidence={transcript.confidence if transcript.confidence is not None else 'n/a'}"
        )
        return await self.llm_service.generate_prescription(request_id, format_transcript(transcript))
