"""
Pydantic Models for API Requests
"""

from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class PrescriptionRequest(BaseModel):
    """Request body of the prescription function"""
    model_config = ConfigDict(populate_by_name=True)

    # Optional so a missing URL is answered with a 400 rather than a validation error.
    audio_url: Optional[str] = Field(
        default=None,
        alias="audioUrl",
        description="Publicly reachable URL of the recorded consultation",
    )


class CertificateRequest(BaseModel):
    """Request body of the certificate function"""
    model_config = ConfigDict(populate_by_name=True)

    common_name: str = Field(default="DocPilot Certificate", alias="commonName")
    country_name: str = Field(default="US", alias="countryName", description="Two-letter country code")
    state_or_province_name: str = Field(default="State", alias="stateOrProvinceName")
    locality_name: str = Field(default="City", alias="localityName")
    organization_name: str = Field(default="DocPilot", alias="organizationName")
    organizational_unit_name: str = Field(default="Development", alias="organizationalUnitName")
    password: str = Field(default="docpilot123", description="Password protecting the PFX bundle")
    uid: Optional[str] = Field(default=None, description="User/Doctor UID, used as the storage file ID")
    user_name: Optional[str] = Field(default=None, alias="userName", description="Used for the PFX filename")
