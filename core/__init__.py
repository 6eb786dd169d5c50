"""
Core utilities and configuration for the migration system.

Modules:
    config: Settings loaded from the environment and .env
    database: Source system database engine
    exceptions: Custom exception hierarchy for error handling
    logging: Logging configuration

Usage:
    from core.config import Settings, settings
    from core.database import create_source_engine
    from core.exceptions import CSVValidationError, GatewayError
    from core.logging import setup_logging
"""

__all__ = [
    "settings",
    "Settings",
    "create_source_engine",
    "setup_logging",
    # Exceptions
    "MigrationException",
    "ExtractionError",
    "CSVExtractionError",
    "CSVValidationError",
    "SourceDatabaseError",
    "ResourceNotFoundError",
    "DispatchError",
    "GatewayError",
    "CircuitOpenError",
    "AuthenticationError",
    "ArtifactWriteError",
    "PipelineStateError",
    "StageOrderError",
    "StateOwnershipError",
    "RetryableError",
    "NonRetryableError",
]
