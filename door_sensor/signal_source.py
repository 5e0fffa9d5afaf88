"""
Raw circuit level sources.

Both sources expose ``read() -> bool`` where True means the circuit is
closed. The driven source additionally offers ``set()`` and
``wait_for_sample()`` so the engine can react to pushed values instead of
waiting out a full poll interval.
"""

import logging
import threading
from typing import Any, Dict

try:
    import RPi.GPIO as GPIO
except (ImportError, RuntimeError):
    # RuntimeError: RPi.GPIO refuses to import off a Raspberry Pi
    GPIO = None

from .errors import ConfigurationError, HardwareInitError, SignalReadError
from .status import Status


class GpioSignalSource:
    """Reads the circuit directly from a GPIO input pin."""

    kind = "gpio"

    def __init__(self, pin: int, pull_up: bool = True, logger: logging.Logger = None):
        self.pin = pin
        self.pull_up = pull_up
        self.logger = logger or logging.getLogger("door_sensor.gpio")

        if GPIO is None:
            raise HardwareInitError("RPi.GPIO is not available on this host")

        try:
            GPIO.setmode(GPIO.BCM)
            pull_up_down = GPIO.PUD_UP if pull_up else GPIO.PUD_DOWN
            GPIO.setup(pin, GPIO.IN, pull_up_down=pull_up_down)
        except (RuntimeError, ValueError, OSError) as e:
            raise HardwareInitError(f"Failed to set up GPIO pin {pin}: {e}") from e

        # Closing the circuit pulls the pin towards the opposite rail
        self.closed_state = GPIO.LOW if pull_up else GPIO.HIGH
        self._initialized = True
        self.logger.info(f"GPIO initialized: pin={pin}, pull_up={pull_up}")

    def read(self) -> bool:
        """Return True when the circuit is closed."""
        try:
            return GPIO.input(self.pin) == self.closed_state
        except (RuntimeError, ValueError, OSError) as e:
            raise SignalReadError(f"Failed to read GPIO pin {self.pin}: {e}") from e

    def close(self) -> None:
        if self._initialized:
            GPIO.cleanup(self.pin)
            self._initialized = False
            self.logger.info("GPIO cleaned up")


class DrivenSignalSource:
    """
    Level pushed from outside the process (HTTP API, tests, simulators).

    ``read()`` returns whatever was set last, or ``default`` until the
    first ``set()``.
    """

    kind = "driven"

    def __init__(self, default: bool = True, logger: logging.Logger = None):
        self.logger = logger or logging.getLogger("door_sensor.driven")
        self._cond = threading.Condition()
        self._level = default
        self._pushed = 0
        self._seen = 0

    def read(self) -> bool:
        with self._cond:
            return self._level

    def set(self, level: bool) -> None:
        with self._cond:
            self._level = bool(level)
            self._pushed += 1
            self._cond.notify_all()
        self.logger.debug(f"Driven level set: {'closed' if level else 'open'}")

    def wait_for_sample(self, timeout: float) -> bool:
        """Block until a new value is pushed or ``timeout`` elapses.

        Returns True when a value arrived that this caller has not seen yet.
        """
        with self._cond:
            if self._pushed == self._seen:
                self._cond.wait(timeout)
            fresh = self._pushed != self._seen
            self._seen = self._pushed
            return fresh

    def close(self) -> None:
        with self._cond:
            self._cond.notify_all()


def create_signal_source(config: Dict[str, Any], logger: logging.Logger = None):
    """Build the signal source named by the ``source`` setting."""
    kind = config.get('source', 'gpio')

    if kind == "gpio":
        return GpioSignalSource(config['gpio_pin'], config.get('gpio_pull_up', True), logger)
    if kind == "driven":
        default = Status.parse(config.get('driven_default', 'closed')) is Status.CLOSED
        return DrivenSignalSource(default=default, logger=logger)

    raise ConfigurationError(f"Unknown signal source: {kind}")
