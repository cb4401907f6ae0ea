"""
Error taxonomy for the relay.

Admin-API errors surface to the caller through the exception handlers in
whatsrelay.main. Event-driven errors (bridge, dispatcher) are logged where they
occur and never reach the event producer.
"""


class RelayError(Exception):
    """Base class for all relay errors."""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ValidationError(RelayError):
    """Bad or missing input to an admin operation."""

    status_code = 400


class PersistenceError(RelayError):
    """A storage write or read failed. The operation was rolled back."""

    status_code = 500


class DeliveryError(RelayError):
    """A webhook POST failed at the transport level."""

    status_code = 502


class MediaFetchError(RelayError):
    """Inbound media could not be downloaded or written to disk."""

    status_code = 502


class ClientNotConnectedError(RelayError):
    """An outbound send was requested while the messaging client is not connected."""

    status_code = 400


class MessagingClientError(RelayError):
    """The messaging client rejected or failed a call."""

    status_code = 502
