import logging
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from video_mosaic.progress import ProgressReporter, eta_string, format_duration  # noqa: E402

LOGGER = logging.getLogger("progress-test")


def test_format_duration():
    assert format_duration(0.2) == "<1s"
    assert format_duration(42) == "42s"
    assert format_duration(125) == "2m05s"
    assert format_duration(3725) == "1h02m05s"


def test_eta_string_needs_progress():
    assert eta_string(10.0, 0, 10) == "ETA estimating"
    assert eta_string(0.0, 5, 10) == "ETA estimating"
    assert eta_string(10.0, 11, 10) == "ETA estimating"
    assert eta_string(10.0, 5, 10).startswith("ETA 10s (finish ")


def test_reporter_logs_every_interval(caplog):
    reporter = ProgressReporter(LOGGER, "Frames", total=40)

    with caplog.at_level(logging.INFO, logger="progress-test"):
        for _ in range(40):
            reporter.advance()

    lines = [record.getMessage() for record in caplog.records]
    assert reporter.interval == 2
    assert len(lines) == 20
    assert lines[-1].startswith("Frames: 40/40 (100.0%")


def test_reporter_without_total_logs_counts(caplog):
    reporter = ProgressReporter(LOGGER, "Frames", interval=3)

    with caplog.at_level(logging.INFO, logger="progress-test"):
        for _ in range(7):
            reporter.advance()

    lines = [record.getMessage() for record in caplog.records]
    assert len(lines) == 2
    assert lines[0].startswith("Frames: 3 completed")
