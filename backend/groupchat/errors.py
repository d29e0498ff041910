"""Error taxonomy shared by the broker, the store and the HTTP routes.

Every error carries a human-readable ``message`` (what the client sees in a
``message-error`` event or an HTTP error body) and a short ``code``.
"""


class ChatError(Exception):
    """Base exception for chat broker errors."""
    code = "chat_error"
    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class NotConnected(ChatError):
    """Raised for operations on an unregistered or disconnected connection."""
    code = "not_connected"
    status_code = 409

    def __init__(self, connection_id: str):
        self.connection_id = connection_id
        super().__init__(f"Connection {connection_id} is not connected")


class Unauthenticated(ChatError):
    """Raised when a connection has no (or a conflicting) bound identity."""
    code = "unauthenticated"
    status_code = 401

    def __init__(self, message: str = "Connection has no identity; send a userId first"):
        super().__init__(message)


class InvalidMessage(ChatError):
    """Raised for empty, oversized or malformed input."""
    code = "invalid_message"
    status_code = 400


class NotFound(ChatError):
    """Raised when a referenced user or room does not exist."""
    code = "not_found"
    status_code = 404


class StoreUnavailable(ChatError):
    """Raised when the durable store cannot be reached."""
    code = "store_unavailable"
    status_code = 503

    def __init__(self, message: str = "Message store is unavailable"):
        super().__init__(message)


class SendFailed(ChatError):
    """User-visible wrapper for a persistence failure during send."""
    code = "send_failed"
    status_code = 503

    def __init__(self, message: str = "Failed to send message"):
        super().__init__(message)
