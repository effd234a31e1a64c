"""Project-level exception hierarchy."""


class RelayError(Exception):
    """Base for all knobase-relay exceptions."""


class ConfigError(RelayError):
    """Configuration is missing or invalid."""


class WebhookError(RelayError):
    """Inbound webhook handling failed."""


class PayloadError(WebhookError):
    """Webhook body could not be decoded or has the wrong shape."""


class KnobaseAPIError(RelayError):
    """A Knobase API call failed or answered with a non-2xx status."""

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status
