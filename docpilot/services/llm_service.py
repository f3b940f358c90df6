"""
LLM Service for structured prescriptions
"""
import instructor
import httpx
from openai import AsyncOpenAI, APIStatusError
from typing import Optional
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type, retry_if_exception

from docpilot.config import settings
from docpilot.core.errors import PrescriptionGenerationError
from docpilot.core.logging import get_logger
from docpilot.models.responses import Prescription

logger = get_logger(__name__)

retryable_exceptions = (
    httpx.TimeoutException,
)


def is_server_error(exception):
    """Return True if the exception is an OpenAI 5xx error"""
    return isinstance(exception, APIStatusError) and exception.status_code >= 500


PRESCRIPTION_PROMPT = """You are a medical AI. Convert the following medical consultation into a structured prescription.
Extract the following:
- symptoms
- diagnosis
- medications (name, dosage, frequency)
- suggested tests (if any)
- follow-up instructions (if any)

Only include information that is stated or clearly implied in the consultation.
Leave a field empty when the consultation does not mention it."""


class LLMService:
    """Service for turning consultation transcripts into prescriptions."""

    def __init__(self, client=None, model: Optional[str] = None):
        self._client = client
        self.model = model or settings.default_llm_model
        self.temperature = settings.llm_temperature
        self.max_tokens = settings.llm_max_tokens

    @property
    def client(self):
        # Created on first use so the app starts without an OpenAI key.
        if self._client is None:
            if not settings.openai_api_key:
                raise PrescriptionGenerationError("OpenAI API key is not configured.")
            # enables response_model keyword
            self._client = instructor.patch(
                AsyncOpenAI(api_key=settings.openai_api_key, timeout=settings.llm_timeout)
            )
        return self._client

    @retry(
        wait=wait_exponential(multiplier=1, min=2, max=60),
        stop=stop_after_attempt(settings.max_retries),
        retry=(retry_if_exception_type(retryable_exceptions) | retry_if_exception(is_server_error)),
        reraise=True,
    )
    async def _complete(self, transcript: str) -> Prescription:
        return await self.client.chat.completions.create(
            model=self.model,
            response_model=Prescription,
            messages=[
                {"role": "system", "content": PRESCRIPTION_PROMPT},
                {"role": "user", "content": f"Transcription:\n{transcript}"},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    async def generate_prescription(self, request_id: str, transcript: str) -> Prescription:
        """
        Ask the model for a prescription matching the Prescription schema.
        """
        logger.info(f"[{request_id}] Sending transcription to {self.model} for structured prescription...")
        try:
            prescription = await self._complete(transcript)
        except PrescriptionGenerationError:
            raise
        except Exception as e:
            logger.error(f"[{request_id}] Prescription generation failed: {e}", exc_info=True)
            raise PrescriptionGenerationError(str(e)) from e

        logger.info(
            f"[{request_id}] Prescription generated: {len(prescription.medications)} medication(s), "
            f"{len(prescription.diagnosis)} diagnoses"
        )
        return prescription
