import logging
from typing import Any, List

import pytest

from wikivote import (
    FastProgressSink,
    LoggingProgressSink,
    NullProgressSink,
    ProgressSink,
    get_default_logger,
    set_verbosity,
)
from wikivote import progress as progress_module


def test_abstract_sink() -> None:
    with pytest.raises(TypeError):
        ProgressSink()  # type: ignore


def test_null_sink() -> None:
    sink = NullProgressSink()
    sink.factor_started(0, 1)
    sink.factor_finished(0, 1, 0.5, 0.25)


def test_logging_sink(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("wikivote-test-progress")
    sink = LoggingProgressSink(logger)
    with caplog.at_level(logging.INFO, logger="wikivote-test-progress"):
        sink.factor_started(2, 30)
        sink.factor_finished(2, 30, 0.0125, 0.5)
    messages = [record.getMessage() for record in caplog.records]
    assert messages == [
        "Factor 3/30",
        "Factor 3/30 finished in 12ms. Mean square error: 0.500000",
    ]


class FakeBar:
    def __init__(self, iterable: Any) -> None:
        self.total = len(iterable)
        self.comment = ""
        self.updates: List[int] = []
        self.comments: List[str] = []

    def update(self, value: int) -> None:
        self.updates.append(value)
        self.comments.append(self.comment)


def test_fastprogress_sink(monkeypatch: pytest.MonkeyPatch) -> None:
    bars: List[FakeBar] = []

    def fake_progress_bar(iterable: Any) -> FakeBar:
        bar = FakeBar(iterable)
        bars.append(bar)
        return bar

    monkeypatch.setattr(progress_module, "progress_bar", fake_progress_bar)
    sink = FastProgressSink()
    for factor in range(2):
        sink.factor_started(factor, 2)
        sink.factor_finished(factor, 2, 0.1, 0.5 / (factor + 1))
    assert len(bars) == 1
    assert bars[0].total == 2
    assert bars[0].updates == [0, 1, 2]
    assert bars[0].comments == ["", "mse=0.500000", "mse=0.250000"]

    # a second training gets a fresh bar
    sink.factor_started(0, 1)
    sink.factor_finished(0, 1, 0.1, 0.0)
    assert len(bars) == 2


def test_set_verbosity() -> None:
    logger = get_default_logger()
    level = logger.level
    try:
        set_verbosity(True)
        assert logger.level == logging.DEBUG
        set_verbosity(False)
        assert logger.level == logging.INFO
    finally:
        logger.setLevel(level)
