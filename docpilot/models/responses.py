"""
Pydantic Models für API Responses
"""

from typing import Optional, Dict, Any, List
from datetime import datetime
from pydantic import BaseModel, ConfigDict, Field


class TranscriptSegment(BaseModel):
    """Einzelnes Transkript-Segment mit optionaler Sprecher-Info"""
    text: str = Field(description="Transkribierter Text")
    start_time: Optional[float] = Field(default=None, description="Startzeit in Sekunden")
    end_time: Optional[float] = Field(default=None, description="Endzeit in Sekunden")
    speaker: Optional[str] = Field(default=None, description="Sprecher-ID (nur bei Diarisierung)")


class TranscriptionResult(BaseModel):
    """Vollständiges Transkriptionsergebnis"""
    provider_transcript_id: Optional[str] = Field(default=None, description="ID des Transkripts beim STT-Provider")
    full_text: str = Field(description="Vollständiger transkribierter Text")
    segments: List[TranscriptSegment] = Field(default_factory=list)
    language_detected: Optional[str] = Field(default=None, description="Erkannte Sprache (ISO 639-1)")
    confidence: Optional[float] = Field(default=None, description="Durchschnittliche Konfidenz")


class Medication(BaseModel):
    """A prescribed medication"""
    name: str = Field(description="Medication name")
    dosage: Optional[str] = Field(default=None, description="Dose per intake, e.g. '500 mg'")
    frequency: Optional[str] = Field(default=None, description="How often to take it, e.g. 'twice daily'")


class Prescription(BaseModel):
    """Structured prescription extracted from a consultation"""
    symptoms: List[str] = Field(default_factory=list, description="Symptoms reported by the patient")
    diagnosis: List[str] = Field(default_factory=list, description="Diagnosis or suspected conditions")
    medications: List[Medication] = Field(default_factory=list, description="Prescribed medications")
    tests: List[str] = Field(default_factory=list, description="Suggested tests, if any")
    follow_up: Optional[str] = Field(default=None, description="Follow-up instructions, if any")


class CertificateResponse(BaseModel):
    """Antwort der Zertifikats-Funktion"""
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    password: str
    expiry_date: datetime = Field(alias="expiryDate")
    file_id: str = Field(alias="fileId")
    file_url: str = Field(alias="fileUrl")
    uid: str


class HealthCheckResponse(BaseModel):
    """Health Check Response"""
    status: str = Field(description="Service Status (healthy/unhealthy)")
    timestamp: datetime = Field(description="Check-Zeitpunkt")
    version: str = Field(description="Service-Version")
    uptime_seconds: int = Field(description="Uptime in Sekunden")
    details: Optional[Dict[str, Any]] = Field(default=None)


class ErrorResponse(BaseModel):
    """Standardisierte Fehlerantwort"""
    error: str = Field(description="Fehlerbeschreibung")
    details: Optional[Any] = Field(default=None, description="Zusätzliche Fehlerdetails")


class RateLimitResponse(BaseModel):
    """Rate Limit Exceeded Response"""
    error: str = Field(default="rate_limit_exceeded")
    message: str = Field(description="Rate Limit Fehlermeldung")
    retry_after: int = Field(description="Sekunden bis zum nächsten Versuch")
    limit: int = Field(description="Request-Limit")
    window: int = Field(description="Zeitfenster in Sekunden")
    timestamp: datetime = Field(description="Fehlerzeitpunkt")
