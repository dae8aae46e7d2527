from pathlib import Path
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict

from .exceptions import HyperparameterError

DEFAULT_DATABASE_PATH = "database.bin"
DEFAULT_MODEL_PATH = "prediction_model.bin"


class WikiVoteConfig(BaseModel):
    model_config = ConfigDict(extra="forbid", protected_namespaces=())


class TrainerConfig(WikiVoteConfig):
    r"""Hyperparameters of :class:`wikivote.trainer.Trainer`.

    Args:
        latent_factors:
            The number of latent factors ``F``. Must be at least 1. Defaults to 30.
        iterations:
            The number of batched gradient steps run for each factor. Must be at least 1.
            Defaults to 120.
        learning_rate:
            The step size. Must be positive. Defaults to 0.004.
        regularization:
            The L2 penalty on the factor being trained. Must be non-negative. Defaults to 0.02.
        n_threads:
            The number of article blocks processed concurrently within a sweep.
            If ``None``, the environment variable ``"WIKIVOTE_NUM_THREADS_DEFAULT"`` will be looked up,
            and if the variable is not set, it will be set to ``os.cpu_count()``. Defaults to None.
        init_value:
            The value every cell of both factor matrices starts from. Defaults to 0.1.
        init_std:
            If positive, normal noise of this standard deviation is added to the initial value.
            Defaults to 0.0, i.e. every cell starts from exactly ``init_value``.
        random_seed:
            The random seed for the initial noise. Defaults to 42.
    """

    latent_factors: int = 30
    iterations: int = 120
    learning_rate: float = 0.004
    regularization: float = 0.02
    n_threads: Optional[int] = None
    init_value: float = 0.1
    init_std: float = 0.0
    random_seed: int = 42

    def validate_hyperparameters(self) -> None:
        if self.latent_factors < 1:
            raise HyperparameterError(
                f"latent_factors must be at least 1, got {self.latent_factors}."
            )
        if self.iterations < 1:
            raise HyperparameterError(
                f"iterations must be at least 1, got {self.iterations}."
            )
        if not self.learning_rate > 0:
            raise HyperparameterError(
                f"learning_rate must be positive, got {self.learning_rate}."
            )
        if not self.regularization >= 0:
            raise HyperparameterError(
                f"regularization must be non-negative, got {self.regularization}."
            )
        if not self.init_std >= 0:
            raise HyperparameterError(
                f"init_std must be non-negative, got {self.init_std}."
            )
        if self.n_threads is not None and self.n_threads < 1:
            raise HyperparameterError(
                f"n_threads must be at least 1, got {self.n_threads}."
            )


class StorageConfig(WikiVoteConfig):
    database_path: Union[str, Path] = DEFAULT_DATABASE_PATH
    model_path: Union[str, Path] = DEFAULT_MODEL_PATH


class UpdateConfig(WikiVoteConfig):
    first: int = 6000
    last: int = 7999
    timeout: float = 5.0


__all__ = [
    "DEFAULT_DATABASE_PATH",
    "DEFAULT_MODEL_PATH",
    "TrainerConfig",
    "StorageConfig",
    "UpdateConfig",
]
