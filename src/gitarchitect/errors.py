"""Error taxonomy shared by the gateways and the analysis pipeline.

- NotFoundError: repository, branch or file does not exist
- RateLimitedError: hosting service or model backend throttled the request
- UnreachableError: network or connection failure (names the endpoint)
- MalformedResponseError: model output failed JSON/schema parsing
- UnconfiguredError: no usable backend credentials or endpoint

Gateway errors are raised where the failure is detected and translated at the
gateway boundary, so the pipeline only ever sees these types.
"""


class ArchitectError(Exception):
    """Base class for all GitArchitect errors."""

    pass


class GatewayError(ArchitectError):
    """Raised when an external gateway (hosting or model backend) fails."""

    pass


class NotFoundError(GatewayError):
    """Raised when a repository, branch, or file is absent."""

    pass


class RateLimitedError(GatewayError):
    """Raised when the hosting service or model backend throttles requests."""

    pass


class UnreachableError(GatewayError):
    """Raised when an endpoint cannot be reached."""

    def __init__(self, endpoint: str, message: str | None = None) -> None:
        self.endpoint = endpoint
        self.message = message or "connection failed"
        super().__init__(f"Endpoint unreachable: {endpoint} ({self.message})")


class LLMError(GatewayError):
    """Raised for model backend failures outside the specific kinds above."""

    pass


class MalformedResponseError(ArchitectError):
    """Raised when a model response cannot be parsed into the expected shape.

    The raw response is preserved for diagnosis.
    """

    def __init__(self, message: str, raw_response: str = "") -> None:
        self.raw_response = raw_response
        super().__init__(message)


class UnconfiguredError(ArchitectError, ValueError):
    """Raised when no usable backend credentials or endpoint are configured."""

    pass
