"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for sync failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class SourceUnavailable(PipelineError):
    """Raised when a source cannot be read or downloaded."""

    error_code = "SOURCE_UNAVAILABLE"


class SourceNotFound(SourceUnavailable):
    """Raised when a source file or URL does not exist."""

    error_code = "SOURCE_NOT_FOUND"


class StoreError(PipelineError):
    """Raised when the store rejects a delete or upsert."""

    error_code = "STORE_ERROR"
