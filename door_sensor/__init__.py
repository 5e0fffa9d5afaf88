"""
Door sensor: debounced circuit monitoring with webhook notifications.
"""

__version__ = "1.0.0"

from .debounce import DebounceEngine, DebounceState
from .endpoints import Endpoint, EndpointRegistry
from .errors import (
    ConfigurationError,
    DeliveryError,
    DoorSensorError,
    DuplicateUrlError,
    EndpointValidationError,
    HardwareInitError,
    InvalidUrlError,
    SignalReadError,
)
from .notifier import DispatchResult, NotificationDispatcher
from .signal_source import DrivenSignalSource, GpioSignalSource, create_signal_source
from .status import SharedStatus, Status, StatusEvent

__all__ = [
    "ConfigurationError",
    "DebounceEngine",
    "DebounceState",
    "DeliveryError",
    "DispatchResult",
    "DoorSensorError",
    "DrivenSignalSource",
    "DuplicateUrlError",
    "Endpoint",
    "EndpointRegistry",
    "EndpointValidationError",
    "GpioSignalSource",
    "HardwareInitError",
    "InvalidUrlError",
    "NotificationDispatcher",
    "SharedStatus",
    "SignalReadError",
    "Status",
    "StatusEvent",
    "create_signal_source",
]
