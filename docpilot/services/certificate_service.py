"""
Doctor signing certificates.

Generates a self-signed RSA certificate, bundles it with its private key into a
password-protected PKCS#12 (PFX) file and stores it in an Appwrite bucket.
"""

import asyncio
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from appwrite.permission import Permission
from appwrite.role import Role
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import ExtendedKeyUsageOID, NameOID

from docpilot.config import settings
from docpilot.core.errors import CertificateError, RemoteServiceError
from docpilot.core.logging import get_logger
from docpilot.models.requests import CertificateRequest
from docpilot.models.responses import CertificateResponse
from docpilot.services.appwrite_gateway import AppwriteFileStore, build_client

logger = get_logger(__name__)

PFX_MIME_TYPE = "application/x-pkcs12"


class CertificateRequestError(CertificateError):
    """The request lacks a value needed to issue a certificate."""


@dataclass
class GeneratedCertificate:
    pfx: bytes
    certificate: x509.Certificate
    not_after: datetime


def safe_filename(user_name: str) -> str:
    """Replace every character that is not a letter or digit with '_' and add .pfx."""
    return re.sub(r"[^a-zA-Z0-9]", "_", user_name) + ".pfx"


def add_years(moment: datetime, years: int) -> datetime:
    try:
        return moment.replace(year=moment.year + years)
    except ValueError:
        # 29 February in a non-leap target year rolls over to 1 March.
        return moment.replace(year=moment.year + years, month=3, day=1)


def build_subject(request: CertificateRequest) -> x509.Name:
    return x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, request.common_name),
        x509.NameAttribute(NameOID.COUNTRY_NAME, request.country_name),
        x509.NameAttribute(NameOID.STATE_OR_PROVINCE_NAME, request.state_or_province_name),
        x509.NameAttribute(NameOID.LOCALITY_NAME, request.locality_name),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, request.organization_name),
        x509.NameAttribute(NameOID.ORGANIZATIONAL_UNIT_NAME, request.organizational_unit_name),
    ])


class CertificateService:
    """Creates PFX bundles and uploads them for a user."""

    def __init__(
        self,
        file_store: Optional[AppwriteFileStore] = None,
        bucket_id: Optional[str] = None,
        key_size: Optional[int] = None,
        validity_years: Optional[int] = None,
        kdf_rounds: Optional[int] = None,
    ):
        self._file_store = file_store
        self.bucket_id = bucket_id or settings.appwrite_bucket_id
        self.key_size = key_size or settings.certificate_key_size
        self.validity_years = validity_years or settings.certificate_validity_years
        self.kdf_rounds = kdf_rounds or settings.certificate_kdf_rounds

    @property
    def file_store(self) -> AppwriteFileStore:
        if self._file_store is None:
            client = build_client(
                settings.appwrite_api_endpoint, settings.appwrite_project_id, settings.appwrite_api_key
            )
            self._file_store = AppwriteFileStore(
                client, settings.appwrite_api_endpoint, settings.appwrite_project_id
            )
        return self._file_store

    def generate(self, request: CertificateRequest, now: Optional[datetime] = None) -> GeneratedCertificate:
        """Generate the key pair, the self-signed certificate and the PFX bundle."""
        key = rsa.generate_private_key(public_exponent=65537, key_size=self.key_size)

        not_before = now or datetime.now(timezone.utc)
        not_after = add_years(not_before, self.validity_years)
        subject = build_subject(request)

        certificate = (
            x509.CertificateBuilder()
            .subject_name(subject)
            .issuer_name(subject)
            .public_key(key.public_key())
            .serial_number(1)
            .not_valid_before(not_before)
            .not_valid_after(not_after)
            .add_extension(x509.BasicConstraints(ca=True, path_length=None), critical=False)
            .add_extension(
                x509.KeyUsage(
                    digital_signature=True,
                    content_commitment=True,
                    key_encipherment=True,
                    data_encipherment=True,
                    key_agreement=False,
                    key_cert_sign=True,
                    crl_sign=False,
                    encipher_only=False,
                    decipher_only=False,
                ),
                critical=False,
            )
            .add_extension(
                x509.ExtendedKeyUsage([
                    ExtendedKeyUsageOID.SERVER_AUTH,
                    ExtendedKeyUsageOID.CLIENT_AUTH,
                    ExtendedKeyUsageOID.CODE_SIGNING,
                    ExtendedKeyUsageOID.EMAIL_PROTECTION,
                    ExtendedKeyUsageOID.TIME_STAMPING,
                ]),
                critical=False,
            )
            .sign(key, hashes.SHA256())
        )

        # 3DES/SHA1 keeps the bundle importable by older Windows and Java keystores.
        encryption = (
            serialization.PrivateFormat.PKCS12.encryption_builder()
            .kdf_rounds(self.kdf_rounds)
            .key_cert_algorithm(pkcs12.PBES.PBESv1SHA1And3KeyTripleDESCBC)
            .hmac_hash(hashes.SHA1())
            .build(request.password.encode())
        )
        pfx = pkcs12.serialize_key_and_certificates(
            name=request.common_name.encode(),
            key=key,
            cert=certificate,
            cas=None,
            encryption_algorithm=encryption,
        )
        return GeneratedCertificate(pfx=pfx, certificate=certificate, not_after=not_after)

    async def issue(self, request_id: str, request: CertificateRequest) -> CertificateResponse:
        """Generate a certificate for request.uid and upload it."""
        if not request.uid:
            raise CertificateRequestError("User/Doctor UID is required")
        if not request.user_name:
            raise CertificateRequestError("User name is required for the certificate file")
        if not self.bucket_id:
            raise CertificateError("Storage bucket is not configured")

        filename = safe_filename(request.user_name)
        logger.info(f"[{request_id}] Generating {self.key_size}-bit certificate {filename} for {request.uid}")

        try:
            # Key generation is CPU bound.
            generated = await asyncio.to_thread(self.generate, request)
        except Exception as e:
            logger.error(f"[{request_id}] Certificate generation failed: {e}")
            raise CertificateError(str(e)) from e

        try:
            file_id = await asyncio.to_thread(
                self.file_store.upload,
                self.bucket_id,
                request.uid,
                generated.pfx,
                filename,
                PFX_MIME_TYPE,
                [Permission.read(Role.any())],
            )
        except RemoteServiceError as e:
            raise CertificateError(e.message) from e
        except Exception as e:
            logger.error(f"[{request_id}] Certificate upload failed: {e}")
            raise CertificateError(str(e)) from e

        return CertificateResponse(
            success=True,
            password=request.password,
            expiry_date=generated.not_after,
            file_id=file_id,
            file_url=self.file_store.view_url(self.bucket_id, file_id),
            uid=request.uid,
        )
