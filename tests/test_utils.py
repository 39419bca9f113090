import logging
from pathlib import Path
from types import SimpleNamespace

import psutil

from utils import ResourceMonitor, setup_logging


def test_resource_monitor_disabled_without_limits() -> None:
    monitor = ResourceMonitor(max_cpu_percent=0, max_ram_percent=0)

    assert monitor.enabled is False
    assert monitor.throttle() == 0.0


def test_resource_monitor_waits_until_usage_drops(monkeypatch) -> None:
    readings = iter([95.0, 95.0, 10.0])
    monkeypatch.setattr(psutil, "cpu_percent", lambda interval=None: next(readings, 10.0))
    monkeypatch.setattr(psutil, "virtual_memory", lambda: SimpleNamespace(percent=20.0))
    monitor = ResourceMonitor(max_cpu_percent=50, max_ram_percent=0, sleep_seconds=0.01)

    waited = monitor.throttle()

    assert waited > 0
    assert monitor.throttle() == 0.0


def test_setup_logging_returns_named_loggers(tmp_path: Path) -> None:
    base = logging.getLogger("gallery")
    saved = list(base.handlers)
    perf = logging.getLogger("gallery.performance")
    saved_perf = list(perf.handlers)
    for handler in saved:
        base.removeHandler(handler)
    try:
        loggers = setup_logging(tmp_path / "logs")

        assert loggers["main"].name == "gallery"
        assert loggers["scan"].name == "gallery.scan"
        assert loggers["performance"].name == "gallery.performance"
        loggers["main"].error("boom")
        assert any(path.name.startswith("error_") for path in (tmp_path / "logs").iterdir())
    finally:
        for handler in list(base.handlers):
            base.removeHandler(handler)
            handler.close()
        for handler in list(perf.handlers):
            if handler not in saved_perf:
                perf.removeHandler(handler)
                handler.close()
        perf.propagate = True
        for handler in saved:
            base.addHandler(handler)
