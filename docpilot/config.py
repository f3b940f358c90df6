"""
Central configuration for the DocPilot backend
"""

from typing import List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field
from enum import Enum


class Environment(str, Enum):
    DEVELOPMENT = "development"
    STAGING = "staging"
    PRODUCTION = "production"


class ModelName(str, Enum):
    GPT_4_1_NANO = "gpt-4.1-nano"
    GPT_4O_MINI = "gpt-4o-mini"
    GPT_4O = "gpt-4o"


DEFAULT_APPWRITE_ENDPOINT = "https://cloud.appwrite.io/v1"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    # Environment
    environment: Environment = Environment.DEVELOPMENT
    debug: bool = Field(default=False)
    log_level: str = Field(default="INFO")

    # API Configuration
    api_title: str = Field(default="DocPilot Functions API")
    api_description: str = Field(default="Prescription and certificate functions for DocPilot")
    api_version: str = Field(default="1.0.0")
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=3001)
    api_secret_key: str = Field(default="")
    function_api_key: str = Field(default="")

    # Appwrite
    # Empty means "not configured"; docpilot-setup then asks for it.
    appwrite_endpoint: str = Field(default="")
    appwrite_project_id: str = Field(default="")
    appwrite_api_key: str = Field(default="")
    appwrite_bucket_id: str = Field(default="")

    # Provisioning
    database_id: str = Field(default="dbDocpilot")
    database_name: str = Field(default="DocPilot Database")
    attribute_poll_interval: float = Field(default=1.0)  # seconds
    attribute_poll_timeout: float = Field(default=60.0)  # seconds

    # External Service APIs
    openai_api_key: str = Field(default="")
    assemblyai_api_key: str = Field(default="")
    assemblyai_api_base_url: str = Field(default="https://api.assemblyai.com")

    # Rate Limiting
    rate_limit_requests: int = Field(default=10)
    rate_limit_window: int = Field(default=60)  # seconds

    # Timeouts and Retries
    stt_timeout: int = Field(default=60)
    llm_timeout: int = Field(default=60)
    max_retries: int = Field(default=3)

    # LLM Configuration
    llm_temperature: float = Field(default=0.0)
    llm_max_tokens: int = Field(default=2000)
    default_llm_model: str = Field(default=ModelName.GPT_4O_MINI.value)

    # STT Configuration
    stt_speaker_labels: bool = Field(default=True)
    stt_language_detection: bool = Field(default=True)

    # Certificates
    certificate_key_size: int = Field(default=4096)
    certificate_validity_years: int = Field(default=1)
    certificate_kdf_rounds: int = Field(default=2048)

    # CORS Configuration
    cors_origins: List[str] = Field(
        default=[
            "http://localhost:3000",
            "http://localhost:8080",
        ]
    )
    cors_allow_credentials: bool = Field(default=True)
    cors_allow_methods: List[str] = Field(default=["GET", "POST"])
    cors_allow_headers: List[str] = Field(default=["*"])

    # Security
    token_algorithm: str = Field(default="HS256")

    # Monitoring
    enable_metrics: bool = Field(default=True)

    @property
    def appwrite_api_endpoint(self) -> str:
        """Configured Appwrite endpoint, or Appwrite Cloud."""
        return self.appwrite_endpoint or DEFAULT_APPWRITE_ENDPOINT


# Global settings instance
settings = Settings()
