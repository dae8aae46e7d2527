import os
from typing import Optional

from .exceptions import HyperparameterError

NUM_THREADS_ENV = "WIKIVOTE_NUM_THREADS_DEFAULT"


def get_n_threads(n_threads: Optional[int]) -> int:
    r"""Resolves the number of trainer threads.

    An explicit ``n_threads`` wins. Otherwise ``WIKIVOTE_NUM_THREADS_DEFAULT`` is read,
    and if it is not set either, ``os.cpu_count()`` is used.

    Raises:
        HyperparameterError: When the resolved value is not a positive integer.
    """
    if n_threads is None:
        raw = os.environ.get(NUM_THREADS_ENV)
        if raw is None:
            return os.cpu_count() or 1
        try:
            n_threads = int(raw)
        except ValueError:
            raise HyperparameterError(
                f'failed to interpret "{NUM_THREADS_ENV}"={raw!r} as an integer.'
            )
        source = NUM_THREADS_ENV
    else:
        source = "n_threads"
    if n_threads < 1:
        raise HyperparameterError(f"{source} must be at least 1, got {n_threads}.")
    return n_threads
