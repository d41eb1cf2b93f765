"""Antigravity translation gateway for the public Gemini API."""

from antigravity_gateway.services.antigravity import (
    AntigravityCredentials,
    AntigravityGateway,
    AntigravityTransport,
    NormalizedResponse,
    PreparedRequest,
    RequestOutcome,
    ResponseOutcome,
    SignatureCache,
)

__version__ = "0.1.0"

__all__ = [
    "AntigravityCredentials",
    "AntigravityGateway",
    "AntigravityTransport",
    "NormalizedResponse",
    "PreparedRequest",
    "RequestOutcome",
    "ResponseOutcome",
    "SignatureCache",
    "__version__",
]
