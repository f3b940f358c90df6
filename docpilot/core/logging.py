"""
Strukturiertes Logging Setup für DocPilot
"""

import logging
import structlog
from datetime import datetime, timezone
from docpilot.config import settings, Environment


def setup_logging():
    """Konfiguriert strukturiertes Logging"""

    # Timestamper für konsistente Zeitstempel
    timestamper = structlog.processors.TimeStamper(fmt="ISO")

    processors = [
        structlog.processors.add_log_level,
        timestamper,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if settings.environment == Environment.DEVELOPMENT:
        # Development: Colored console output
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        # Production: JSON output
        processors.extend([
            structlog.processors.dict_tracebacks,
            structlog.processors.JSONRenderer()
        ])

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str = None):
    """Erstellt einen konfigurierten Logger"""
    return structlog.get_logger(name or __name__)


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class AuditLogger:
    """Spezieller Logger für Audit-Events"""

    def __init__(self):
        self.logger = get_logger("audit")

    def log_api_request(
        self,
        request_id: str,
        endpoint: str,
        method: str,
        api_key_hash: str = None,
        user_agent: str = None,
        ip_address: str = None,
        **kwargs
    ):
        """Loggt API-Anfragen für Audit-Zwecke"""
        self.logger.info(
            "api_request",
            request_id=request_id,
            endpoint=endpoint,
            method=method,
            api_key_hash=api_key_hash,
            user_agent=user_agent,
            ip_address=ip_address,
            timestamp=_now(),
            **kwargs
        )

    def log_external_api_call(
        self,
        request_id: str,
        service: str,
        operation: str,
        success: bool,
        response_time_ms: int,
        **kwargs
    ):
        """Loggt Calls zu externen APIs"""
        self.logger.info(
            "external_api_call",
            request_id=request_id,
            service=service,
            operation=operation,
            success=success,
            response_time_ms=response_time_ms,
            timestamp=_now(),
            **kwargs
        )

    def log_provisioning_run(
        self,
        endpoint: str,
        project_id: str,
        database_id: str,
        api_key_hash: str,
        succeeded: bool,
        **kwargs
    ):
        """Loggt einen Provisioning-Lauf gegen eine Appwrite-Datenbank"""
        self.logger.info(
            "provisioning_run",
            endpoint=endpoint,
            project_id=project_id,
            database_id=database_id,
            api_key_hash=api_key_hash,
            succeeded=succeeded,
            timestamp=_now(),
            **kwargs
        )

    def log_error(
        self,
        request_id: str,
        error_type: str,
        error_message: str,
        stack_trace: str = None,
        **kwargs
    ):
        """Loggt Fehler-Events"""
        self.logger.error(
            "error_event",
            request_id=request_id,
            error_type=error_type,
            error_message=error_message,
            stack_trace=stack_trace,
            timestamp=_now(),
            **kwargs
        )


# Global audit logger instance
audit_logger = AuditLogger()
