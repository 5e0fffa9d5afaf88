import time

from door_sensor import health
from door_sensor.health import SystemMonitor


def test_system_stats_shape():
    monitor = SystemMonitor(started_at=time.time() - 90061)

    stats = monitor.get_system_stats()

    assert stats['uptime'] == "1d 1h 1m"
    assert stats['uptime_seconds'] >= 90061
    assert 0 <= stats['memory_usage'] <= 100
    assert stats['process_memory_bytes'] > 0
    assert stats['threads'] >= 1


def test_cpu_temp_read_from_thermal_zone(tmp_path, monkeypatch):
    zone = tmp_path / "temp"
    zone.write_text("48312\n")
    monkeypatch.setattr(health, "THERMAL_ZONE_FILE", str(zone))

    assert SystemMonitor.get_cpu_temp() == 48.312


def test_cpu_temp_missing(tmp_path, monkeypatch):
    monkeypatch.setattr(health, "THERMAL_ZONE_FILE", str(tmp_path / "missing"))

    assert SystemMonitor.get_cpu_temp() is None
