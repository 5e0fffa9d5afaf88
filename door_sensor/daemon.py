"""
Door Sensor Daemon
Watches a two-state circuit and notifies registered webhooks on every
confirmed state change.
"""

import argparse
import logging
import os
import signal
import sys
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .api import ApiServer, create_app
from .config import load_config, log_level
from .debounce import DebounceEngine
from .endpoints import EndpointRegistry
from .errors import ConfigurationError, HardwareInitError, SignalReadError
from .health import SystemMonitor
from .logging_setup import setup_logging
from .notifier import NotificationDispatcher
from .signal_source import create_signal_source
from .status import SharedStatus


class DoorSensorDaemon:
    def __init__(self, config_file: str = None, config: Dict[str, Any] = None):
        """Initialize daemon with configuration."""
        self.config = config or load_config(config_file)
        self.logger = setup_logging(
            self.config['log_file'],
            level=log_level(self.config),
            max_bytes=self.config['log_max_bytes'],
            backup_count=self.config['log_backup_count'],
        )

        self.running = False
        self._stop = threading.Event()
        self.pid_file = Path(self.config['pid_file'])

        self.shared_status = SharedStatus()
        self.registry = EndpointRegistry(self.config['endpoints_file'],
                                         logger=logging.getLogger('door_sensor.endpoints'))
        self.registry.load()

        # Hardware errors surface here, before anything starts running
        self.source = create_signal_source(self.config, logger=logging.getLogger('door_sensor.source'))
        try:
            self.engine = DebounceEngine(
                self.source,
                self.shared_status,
                poll_interval=self.config['poll_interval'],
                debounce_delay=self.config['debounce_delay'],
                notify_on_startup=self.config['notify_on_startup'],
            )
        except Exception:
            # First sample failed, release the pin
            self.source.close()
            raise
        self.dispatcher = NotificationDispatcher.from_config(self.config, self.registry)
        self.system_monitor = SystemMonitor()
        self.api_server: Optional[ApiServer] = None

    def _signal_handler(self, signum: int, frame) -> None:
        """Handle shutdown signals."""
        self.logger.info(f"Received signal {signum}, shutting down...")
        self.stop()

    def stop(self) -> None:
        self.running = False
        self._stop.set()
        self.engine.stop()

    def _check_single_instance(self) -> bool:
        """Ensure only one instance is running."""
        if self.pid_file.exists():
            try:
                pid = int(self.pid_file.read_text().strip())
                os.kill(pid, 0)  # Check if process exists
                self.logger.error(f"Another instance already running (PID: {pid})")
                return False
            except (ValueError, OSError):
                self.logger.warning("Removing stale PID file")
                self.pid_file.unlink(missing_ok=True)
        return True

    @contextmanager
    def _pid_file_context(self):
        """Manage PID file lifecycle."""
        try:
            self.pid_file.parent.mkdir(parents=True, exist_ok=True, mode=0o755)
            self.pid_file.write_text(str(os.getpid()))
            self.logger.info(f"PID file created: {self.pid_file}")
            yield
        finally:
            self.pid_file.unlink(missing_ok=True)
            self.logger.info("PID file removed")

    def _check_health(self) -> None:
        """Log a periodic health report."""
        stats = self.system_monitor.get_system_stats()
        self.logger.info(f"Health check: state={self.shared_status.get().value}, "
                         f"endpoints={len(self.registry)}, "
                         f"CPU: {stats['cpu_usage']}%, Memory: {stats['memory_usage']}%, "
                         f"Temperature: {stats['cpu_temp']}, uptime {stats['uptime']}")

    def _health_loop(self) -> None:
        while not self._stop.wait(self.config['health_interval']):
            self._check_health()

    def _start_api(self) -> None:
        if not self.config['api_enabled']:
            return

        app = create_app(self.shared_status, self.registry, self.source, self.system_monitor,
                         shutdown_event=self._stop)
        self.api_server = ApiServer(app, self.config['api_host'], self.config['api_port'])
        threading.Thread(target=self.api_server.serve_forever, name="api", daemon=True).start()

    def monitor(self) -> None:
        """Main monitoring loop."""
        if not self._check_single_instance():
            sys.exit(1)

        with self._pid_file_context():
            signal.signal(signal.SIGINT, self._signal_handler)
            signal.signal(signal.SIGTERM, self._signal_handler)

            self.running = True
            self.logger.info(f"Starting door sensor monitoring (v{__version__}, source={self.source.kind}, "
                             f"debounce={self.config['debounce_delay']}s, "
                             f"poll={self.config['poll_interval']}s, endpoints={len(self.registry)})")

            try:
                self._start_api()
                threading.Thread(target=self._health_loop, name="health", daemon=True).start()

                for event in self.engine.events():
                    # Fire and forget: the dispatcher reports its own outcome
                    self.dispatcher.dispatch(event)

            except KeyboardInterrupt:
                self.logger.info("Received keyboard interrupt")
            except SignalReadError as e:
                self.logger.error(f"Sensor read failed, monitoring stopped: {e}")
                raise
            finally:
                self._cleanup()

    def _cleanup(self) -> None:
        """Clean up resources."""
        self.stop()
        self.dispatcher.shutdown(wait=True)
        if self.api_server is not None:
            self.api_server.shutdown()
        self.source.close()
        self.logger.info("Cleanup completed")


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Notify webhooks when a door circuit changes state.")
    parser.add_argument("-c", "--config", help="path to config.ini (default: $DOOR_SENSOR_CONFIG "
                                                "or /etc/door_sensor/config.ini)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def main(argv=None) -> None:
    """Main entry point."""
    args = parse_args(argv)
    try:
        daemon = DoorSensorDaemon(args.config)
        daemon.monitor()
    except ConfigurationError as e:
        logging.error(f"Configuration error: {e}")
        sys.exit(1)
    except HardwareInitError as e:
        logging.error(f"Hardware initialization failed: {e}")
        sys.exit(1)
    except SignalReadError as e:
        logging.error(f"Monitoring aborted: {e}")
        sys.exit(1)
    except Exception as e:
        logging.error(f"Unexpected error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
