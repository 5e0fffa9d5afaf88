"""
Exception types raised by the door sensor daemon.
"""


class DoorSensorError(Exception):
    """Base class for door sensor errors."""
    pass


class ConfigurationError(DoorSensorError):
    """Configuration-related errors."""
    pass


class HardwareInitError(DoorSensorError):
    """The sensor hardware could not be initialized."""
    pass


class SignalReadError(DoorSensorError):
    """Reading the sensor failed while monitoring."""
    pass


class EndpointValidationError(DoorSensorError):
    """A webhook endpoint was rejected at registration."""

    error_code = "InvalidEndpoint"

    def __init__(self, message: str, url: str = None):
        super().__init__(message)
        self.url = url


class DuplicateUrlError(EndpointValidationError):
    """The URL is already registered."""

    error_code = "DuplicateUrl"


class InvalidUrlError(EndpointValidationError):
    """The URL is not an absolute http(s) URL."""

    error_code = "InvalidUrl"


class DeliveryError(DoorSensorError):
    """A single webhook delivery attempt failed."""

    def __init__(self, message: str, url: str, status_code: int = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code
