from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("wikivote")
except PackageNotFoundError:  # pragma: no cover
    __version__ = "0.0.0"

from .config import StorageConfig, TrainerConfig, UpdateConfig
from .database import VoteStore
from .default_logger import (
    disable_default_handler,
    get_default_logger,
    set_verbosity,
)
from .exceptions import *
from .model import PredictionModel, build_seen_filter
from .persistence import load_database, load_model, save_database, save_model
from .progress import (
    FastProgressSink,
    LoggingProgressSink,
    NullProgressSink,
    ProgressSink,
)
from .trainer import Trainer

__all__ = [
    "VoteStore",
    "PredictionModel",
    "build_seen_filter",
    "Trainer",
    "TrainerConfig",
    "StorageConfig",
    "UpdateConfig",
    "ProgressSink",
    "NullProgressSink",
    "LoggingProgressSink",
    "FastProgressSink",
    "save_database",
    "load_database",
    "save_model",
    "load_model",
    "get_default_logger",
    "set_verbosity",
    "disable_default_handler",
    "WikiVoteError",
    "FileIOError",
    "DecodeError",
    "DuplicateArticleError",
    "UnknownArticleError",
    "UnknownUserError",
    "HyperparameterError",
    "FetchError",
]
