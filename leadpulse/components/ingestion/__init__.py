"""
Ingestion component - Validated intake of clicks and leads.
"""

from ._impl import (
    EMAIL_REGEX,
    InMemoryDirectory,
    InMemoryIdempotencyStore,
    IngestionService,
    classify_user_agent,
    validate_email,
)
from .component import run_capture_lead, run_record_click
from .models import (
    DEFAULT_CONFIG,
    CaptureLeadInput,
    CaptureLeadOutput,
    ErrorKind,
    IngestionConfig,
    IngestionError,
    RecordClickInput,
    RecordClickOutput,
)
from .ports import DirectoryPort, IdempotencyStorePort

__all__ = [
    # Entry points
    "run_capture_lead",
    "run_record_click",
    # Service
    "IngestionService",
    "InMemoryDirectory",
    "InMemoryIdempotencyStore",
    # Pure functions
    "EMAIL_REGEX",
    "classify_user_agent",
    "validate_email",
    # Models
    "DEFAULT_CONFIG",
    "CaptureLeadInput",
    "CaptureLeadOutput",
    "ErrorKind",
    "IngestionConfig",
    "IngestionError",
    "RecordClickInput",
    "RecordClickOutput",
    # Ports
    "DirectoryPort",
    "IdempotencyStorePort",
]
