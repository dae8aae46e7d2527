import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

from fastprogress import progress_bar

from .default_logger import get_default_logger


class ProgressSink(ABC):
    """Receives training progress from :class:`wikivote.trainer.Trainer`.

    The trainer calls these methods synchronously from the thread running
    :meth:`Trainer.train`.
    """

    @abstractmethod
    def factor_started(self, factor: int, n_factors: int) -> None:
        """Called before the first iteration of ``factor`` (0-based)."""
        raise NotImplementedError()  # pragma: no cover

    @abstractmethod
    def factor_finished(
        self, factor: int, n_factors: int, elapsed: float, mse: float
    ) -> None:
        """Called after the last iteration of ``factor``.

        Args:
            factor: The 0-based index of the factor.
            n_factors: The total number of factors.
            elapsed: Wall-clock seconds spent on this factor.
            mse: The mean squared error measured in the last iteration.
        """
        raise NotImplementedError()  # pragma: no cover


class NullProgressSink(ProgressSink):
    def factor_started(self, factor: int, n_factors: int) -> None:
        pass

    def factor_finished(
        self, factor: int, n_factors: int, elapsed: float, mse: float
    ) -> None:
        pass


class LoggingProgressSink(ProgressSink):
    def __init__(self, logger: Optional[logging.Logger] = None) -> None:
        self.logger = get_default_logger() if logger is None else logger

    def factor_started(self, factor: int, n_factors: int) -> None:
        self.logger.info("Factor %d/%d", factor + 1, n_factors)

    def factor_finished(
        self, factor: int, n_factors: int, elapsed: float, mse: float
    ) -> None:
        self.logger.info(
            "Factor %d/%d finished in %dms. Mean square error: %f",
            factor + 1,
            n_factors,
            int(elapsed * 1000),
            mse,
        )


class FastProgressSink(ProgressSink):
    """Shows a ``fastprogress`` bar over the factors, with the latest MSE as its comment."""

    def __init__(self) -> None:
        self._bar: Optional[Any] = None

    def factor_started(self, factor: int, n_factors: int) -> None:
        if self._bar is None:
            self._bar = progress_bar(range(n_factors))
            self._bar.update(0)

    def factor_finished(
        self, factor: int, n_factors: int, elapsed: float, mse: float
    ) -> None:
        if self._bar is None:
            return
        self._bar.comment = f"mse={mse:.6f}"
        self._bar.update(factor + 1)
        if factor + 1 >= n_factors:
            self._bar = None


__all__ = [
    "ProgressSink",
    "NullProgressSink",
    "LoggingProgressSink",
    "FastProgressSink",
]
