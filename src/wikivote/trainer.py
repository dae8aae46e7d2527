import logging
import time
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Tuple

import numpy as np

from ._threading import get_n_threads
from .config import TrainerConfig
from .database import VoteStore
from .default_logger import get_default_logger
from .definitions import DenseMatrix
from .model import PredictionModel, build_seen_filter
from .progress import LoggingProgressSink, ProgressSink

# (user gradient, article gradient, sum of squared errors, number of votes)
_Partial = Tuple[np.ndarray, np.ndarray, float, int]

# bounds the (chunk, n_factors) temporaries of a single sweep.
_CHUNK_SIZE = 65536


def _article_blocks(
    vote_counts: np.ndarray, n_blocks: int
) -> List[Tuple[int, int]]:
    r"""Splits the flattened votes into at most ``n_blocks`` ranges of whole articles
    holding roughly the same number of votes."""
    offsets = np.concatenate([[0], np.cumsum(vote_counts)]).astype(np.int64)
    n_votes = int(offsets[-1])
    if n_votes == 0:
        return []
    targets = (np.arange(1, n_blocks) * n_votes) // n_blocks
    cuts = offsets[np.searchsorted(offsets, targets)]
    boundaries = np.unique(np.concatenate([[0], cuts, [n_votes]]))
    return [
        (int(begin), int(end)) for begin, end in zip(boundaries[:-1], boundaries[1:])
    ]


class Trainer(object):
    r"""Learns a :class:`PredictionModel` from a vote database, one latent factor at a time.

    Both factor matrices start from a constant ``init_value``. For each factor ``k``,
    ``iterations`` batched gradient steps are taken on column ``k`` of both matrices:
    every vote :math:`s_{ua} \in \{+1, -1\}` contributes the error

    .. math ::

        e_{ua} = s_{ua} - \mathbf{p}_u \cdot \mathbf{q}_a

    computed over *all* the factors (the ones not trained yet still hold their initial value),
    and the gradients

    .. math ::

        \Delta p_{uk} = \eta \sum_a (q_{ak} e_{ua} - \lambda p_{uk}), \quad
        \Delta q_{ak} = \eta \sum_u (p_{uk} e_{ua} - \lambda q_{ak})

    are applied after all the votes have been visited.

    The votes are split into contiguous blocks of articles processed by ``n_threads`` workers;
    their partial sums are added in block order, so results are reproducible for a
    fixed ``n_threads``.

    Args:
        database:
            The vote database. The trainer keeps its own snapshot, so later
            changes to ``database`` do not affect the training.
        latent_factors:
            The number of latent factors. Defaults to 30.
        iterations:
            The number of gradient steps per factor. There is no early stopping. Defaults to 120.
        learning_rate:
            The step size :math:`\eta`. Defaults to 0.004.
        regularization:
            The regularization coefficient :math:`\lambda`. Defaults to 0.02.
        n_threads:
            Specifies the number of threads to use for the computation.
            If ``None``, the environment variable ``"WIKIVOTE_NUM_THREADS_DEFAULT"`` will be looked up,
            and if the variable is not set, it will be set to ``os.cpu_count()``. Defaults to None.
        init_value:
            The initial value of every factor matrix cell. Defaults to 0.1.
        init_std:
            Standard deviation of the normal noise added to the initial values.
            The default 0.0 starts every cell from exactly ``init_value``, in which case
            users (or articles) with identical vote patterns stay identical.
        random_seed:
            The random seed for the initial noise. Defaults to 42.
        progress:
            Receives the factor start/finish events. Defaults to :class:`LoggingProgressSink`.
        logger:
            The logger. Defaults to the package logger.

    Raises:
        HyperparameterError: When a hyperparameter is out of its range.

    Examples:

        >>> from wikivote import Trainer, VoteStore
        >>> store = VoteStore()
        >>> alice = store.add_user("alice")
        >>> _ = store.add_article("scp-173", "1956234", [(alice, True)])
        >>> model = Trainer(store, latent_factors=1, iterations=50, learning_rate=0.1, regularization=0.0).train()
        >>> model.user_factors.shape
        (1, 1)
    """

    def __init__(
        self,
        database: VoteStore,
        latent_factors: int = 30,
        iterations: int = 120,
        learning_rate: float = 0.004,
        regularization: float = 0.02,
        n_threads: Optional[int] = None,
        init_value: float = 0.1,
        init_std: float = 0.0,
        random_seed: int = 42,
        progress: Optional[ProgressSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config = TrainerConfig(
            latent_factors=latent_factors,
            iterations=iterations,
            learning_rate=learning_rate,
            regularization=regularization,
            n_threads=n_threads,
            init_value=init_value,
            init_std=init_std,
            random_seed=random_seed,
        )
        self.config.validate_hyperparameters()
        self.latent_factors = latent_factors
        self.iterations = iterations
        self.learning_rate = learning_rate
        self.regularization = regularization
        self.n_threads = get_n_threads(n_threads)
        self.init_value = init_value
        self.init_std = init_std
        self.random_seed = random_seed
        self.database = database.copy()
        self.progress: ProgressSink = (
            LoggingProgressSink(logger) if progress is None else progress
        )
        self.logger = get_default_logger() if logger is None else logger

        self.mse_history: List[List[float]] = []

        self._user_factors: Optional[DenseMatrix] = None
        self._article_factors: Optional[DenseMatrix] = None
        self._article_indices, self._user_indices, self._signs = self.database.to_coo()
        self._blocks = _article_blocks(
            np.asarray(
                [len(votes) for votes in self.database.votes_for_article],
                dtype=np.int64,
            ),
            self.n_threads,
        )

    @classmethod
    def from_config(
        cls,
        database: VoteStore,
        config: TrainerConfig,
        progress: Optional[ProgressSink] = None,
        logger: Optional[logging.Logger] = None,
    ) -> "Trainer":
        if not isinstance(config, TrainerConfig):
            raise ValueError("config must be a TrainerConfig.")
        return cls(database, progress=progress, logger=logger, **config.model_dump())

    def _initial_factors(self, rns: np.random.RandomState, n_rows: int) -> DenseMatrix:
        result: DenseMatrix = np.full(
            (n_rows, self.latent_factors), self.init_value, dtype=np.float64
        )
        if self.init_std > 0:
            result += self.init_std * rns.randn(n_rows, self.latent_factors)
        return result

    def start_learning(self) -> None:
        rns = np.random.RandomState(self.random_seed)
        self._user_factors = self._initial_factors(rns, self.database.n_users)
        self._article_factors = self._initial_factors(rns, self.database.n_articles)
        self.mse_history = []

    def _sweep_block(self, factor: int, begin: int, end: int) -> _Partial:
        assert self._user_factors is not None and self._article_factors is not None
        P = self._user_factors
        Q = self._article_factors
        user_gradient = np.zeros(P.shape[0], dtype=np.float64)
        article_gradient = np.zeros(Q.shape[0], dtype=np.float64)
        squared_error = 0.0
        for chunk_begin in range(begin, end, _CHUNK_SIZE):
            chunk_end = min(chunk_begin + _CHUNK_SIZE, end)
            users = self._user_indices[chunk_begin:chunk_end]
            articles = self._article_indices[chunk_begin:chunk_end]
            user_rows = P[users]
            article_rows = Q[articles]
            error = self._signs[chunk_begin:chunk_end] - np.einsum(
                "ij,ij->i", user_rows, article_rows
            )
            p_k = user_rows[:, factor]
            q_k = article_rows[:, factor]
            user_gradient += np.bincount(
                users,
                weights=q_k * error - self.regularization * p_k,
                minlength=P.shape[0],
            )
            article_gradient += np.bincount(
                articles,
                weights=p_k * error - self.regularization * q_k,
                minlength=Q.shape[0],
            )
            squared_error += float(error.dot(error))
        return user_gradient, article_gradient, squared_error, end - begin

    def _sweep(
        self, factor: int, executor: Optional[ThreadPoolExecutor]
    ) -> _Partial:
        assert self._user_factors is not None and self._article_factors is not None
        if executor is None:
            partials = [
                self._sweep_block(factor, begin, end) for begin, end in self._blocks
            ]
        else:
            partials = list(
                executor.map(
                    lambda block: self._sweep_block(factor, block[0], block[1]),
                    self._blocks,
                )
            )
        user_gradient = np.zeros(self._user_factors.shape[0], dtype=np.float64)
        article_gradient = np.zeros(self._article_factors.shape[0], dtype=np.float64)
        squared_error = 0.0
        count = 0
        for partial in partials:
            user_gradient += partial[0]
            article_gradient += partial[1]
            squared_error += partial[2]
            count += partial[3]
        return user_gradient, article_gradient, squared_error, count

    def run_iteration(
        self, factor: int, executor: Optional[ThreadPoolExecutor] = None
    ) -> float:
        r"""Runs a single batched gradient step on column ``factor``.

        Returns:
            The mean squared error over all the votes, measured before the step.
            0.0 if there are no votes.
        """
        if self._user_factors is None or self._article_factors is None:
            raise RuntimeError("'run_iteration' called before 'start_learning'.")
        user_gradient, article_gradient, squared_error, count = self._sweep(
            factor, executor
        )
        self._user_factors[:, factor] += self.learning_rate * user_gradient
        self._article_factors[:, factor] += self.learning_rate * article_gradient
        return squared_error / count if count else 0.0

    def train(self) -> PredictionModel:
        """Runs the whole training and returns the resulting model."""
        self.logger.info(
            "Training %d factors on %d articles, %d users and %d votes.",
            self.latent_factors,
            self.database.n_articles,
            self.database.n_users,
            self.database.total_votes,
        )
        self.start_learning()
        executor: Optional[ThreadPoolExecutor] = None
        if self.n_threads > 1 and len(self._blocks) > 1:
            executor = ThreadPoolExecutor(max_workers=self.n_threads)
        try:
            for factor in range(self.latent_factors):
                self.progress.factor_started(factor, self.latent_factors)
                start = time.perf_counter()
                history: List[float] = []
                for _ in range(self.iterations):
                    history.append(self.run_iteration(factor, executor))
                self.mse_history.append(history)
                self.progress.factor_finished(
                    factor,
                    self.latent_factors,
                    time.perf_counter() - start,
                    history[-1],
                )
        finally:
            if executor is not None:
                executor.shutdown()
        self.logger.info("Training finished.")

        self.logger.debug("Constructing read-filter...")
        seen = build_seen_filter(self.database)
        assert self._user_factors is not None and self._article_factors is not None
        model = PredictionModel(
            self.database, self._user_factors, self._article_factors, seen
        )
        self._user_factors = None
        self._article_factors = None
        return model
