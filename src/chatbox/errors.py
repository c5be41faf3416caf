"""Error taxonomy shared by the chat core.

Every failure of a single chat turn is one of the classes below. The stream
reconciler converts them into a visible assistant message, so none of them
is fatal to the process.
"""


class ChatboxError(Exception):
    """Base class for all chatbox errors."""


class ConfigurationError(ChatboxError):
    """Provider settings cannot produce a valid request (bad base URL, missing key)."""


class TransportError(ChatboxError):
    """Network failure or non-2xx response from a provider.

    Attributes:
        status_code: HTTP status when the server answered, None for network failures
        provider_message: Machine-readable message from the error body, if any
    """

    def __init__(
        self,
        description: str,
        status_code: int | None = None,
        provider_message: str | None = None
    ):
        self.status_code = status_code
        self.provider_message = provider_message
        super().__init__(description)

    def __str__(self) -> str:
        description = super().__str__()
        if self.status_code is not None:
            description = f"HTTP {self.status_code}: {description}"
        if self.provider_message and self.provider_message not in description:
            description = f"{description} ({self.provider_message})"
        return description


class ProtocolError(ChatboxError):
    """A successful response could not be parsed into the provider schema."""


class PersistenceError(ChatboxError):
    """Serialization or key-value storage failure."""
