"""Error taxonomy shared by the pipelines and the HTTP layer."""

from __future__ import annotations


class GatewayError(Exception):
    """Base error; carries the HTTP status the API layer should answer with."""

    status_code = 500
    prefix = "Internal error"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return f"{self.prefix}: {self.message}"


class ValidationError(GatewayError):
    status_code = 400
    prefix = "Validation error"


class TokenizationError(GatewayError):
    status_code = 400
    prefix = "Tokenization error"


class ConfigurationError(GatewayError):
    """Tokenizer source unset or unreadable. Fatal at startup."""

    status_code = 500
    prefix = "Configuration error"


class BackendConnectionError(GatewayError):
    """The inference server could not be reached."""

    status_code = 503
    prefix = "Triton connection error"


class InferenceError(GatewayError):
    """The inference server answered, but not with something usable."""

    status_code = 500
    prefix = "Inference error"


class InternalError(GatewayError):
    status_code = 500
    prefix = "Internal error"


class NotReadyError(GatewayError):
    status_code = 503
    prefix = "Not ready"


__all__ = [
    "GatewayError",
    "ValidationError",
    "TokenizationError",
    "ConfigurationError",
    "BackendConnectionError",
    "InferenceError",
    "InternalError",
    "NotReadyError",
]
