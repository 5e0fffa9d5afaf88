"""
Host and process statistics for health reporting.
"""

import time
from typing import Any, Dict, Optional

import psutil

THERMAL_ZONE_FILE = "/sys/class/thermal/thermal_zone0/temp"


class SystemMonitor:
    """Collects CPU, memory and temperature figures via psutil."""

    def __init__(self, started_at: float = None):
        self.started_at = started_at or time.time()
        self._process = psutil.Process()

    @staticmethod
    def get_cpu_temp() -> Optional[float]:
        try:
            with open(THERMAL_ZONE_FILE, 'r') as f:
                return float(f.read()) / 1000.0
        except (OSError, ValueError):
            return None

    def uptime_seconds(self) -> int:
        return int(time.time() - self.started_at)

    def get_system_stats(self) -> Dict[str, Any]:
        uptime = self.uptime_seconds()
        days, rest = divmod(uptime, 86400)
        hours, rest = divmod(rest, 3600)
        minutes = rest // 60

        return {
            'uptime_seconds': uptime,
            'uptime': f"{days}d {hours}h {minutes}m",
            'cpu_usage': psutil.cpu_percent(interval=None),
            'memory_usage': psutil.virtual_memory().percent,
            'process_memory_bytes': self._process.memory_info().rss,
            'threads': self._process.num_threads(),
            'cpu_temp': self.get_cpu_temp(),
        }
