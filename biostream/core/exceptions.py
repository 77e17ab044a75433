"""
Custom exceptions for the biostream pipeline.

Data-path anomalies (short payloads, lost packets, not enough samples) are
counted or reported as empty results; these exceptions are reserved for
misuse and misconfiguration.
"""


class BiostreamError(Exception):
    """Base exception for all biostream errors."""

    def __init__(self, message: str, code: str = "BIOSTREAM_ERROR") -> None:
        self.message = message
        self.code = code
        super().__init__(self.message)


class DecodeError(BiostreamError):
    """Packet layout cannot be decoded as configured."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="DECODE_ERROR")


class ProcessingError(BiostreamError):
    """Signal processing errors."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="PROCESSING_ERROR")


class PipelineStateError(BiostreamError):
    """Operation not valid in the pipeline's current lifecycle state."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="PIPELINE_STATE_ERROR")


class ConfigurationError(BiostreamError):
    """Invalid pipeline configuration."""

    def __init__(self, message: str) -> None:
        super().__init__(message, code="CONFIGURATION_ERROR")
