r"""Binary encoding of :class:`VoteStore` and :class:`PredictionModel`.

Both are stored as a pickled envelope

.. code-block:: python

    {"format": "wikivote.database", "version": 1, "fields": {...}}

whose ``fields`` hold only builtin values and numpy arrays, keyed by field name.
Readers fill in fields missing from files written by older versions and reject
files with a newer major version. Loading resolves no globals except the few
numpy callables needed to rebuild arrays.
"""
import io
import os
import pickle
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any, Dict, List, Optional, Union

import numpy as np

from .config import DEFAULT_DATABASE_PATH, DEFAULT_MODEL_PATH
from .database import VoteStore
from .default_logger import get_default_logger
from .exceptions import DecodeError, FileIOError

if TYPE_CHECKING:
    from .model import PredictionModel

PathLike = Union[str, Path]

DATABASE_FORMAT = "wikivote.database"
MODEL_FORMAT = "wikivote.prediction_model"
SCHEMA_VERSION = 1


# numpy moved its internals from numpy.core to numpy._core in 2.0.
_ARRAY_GLOBALS = frozenset(
    [
        ("numpy", "ndarray"),
        ("numpy", "dtype"),
        ("numpy.core.multiarray", "_reconstruct"),
        ("numpy._core.multiarray", "_reconstruct"),
        ("numpy.core.numeric", "_frombuffer"),
        ("numpy._core.numeric", "_frombuffer"),
    ]
)


class _ArrayOnlyUnpickler(pickle.Unpickler):
    def find_class(self, module: str, name: str) -> Any:
        if (module, name) in _ARRAY_GLOBALS:
            return super().find_class(module, name)
        raise DecodeError(f"unexpected object {module}.{name} in the file.")


def _dumps(format: str, fields: Dict[str, Any]) -> bytes:
    return pickle.dumps(
        dict(format=format, version=SCHEMA_VERSION, fields=fields),
        protocol=pickle.HIGHEST_PROTOCOL,
    )


def _loads(data: bytes, format: str) -> Dict[str, Any]:
    try:
        envelope = _ArrayOnlyUnpickler(io.BytesIO(data)).load()
    except DecodeError:
        raise
    except (
        pickle.UnpicklingError,
        EOFError,
        AttributeError,
        ImportError,
        IndexError,
        KeyError,
        TypeError,
        ValueError,
        OverflowError,
        MemoryError,
        RecursionError,
    ) as e:
        raise DecodeError(f"failed to decode {format}: {e}") from e
    if not isinstance(envelope, dict):
        raise DecodeError(f"{format} envelope must be a dict.")
    if envelope.get("format") != format:
        raise DecodeError(
            f"expected format {format}, but the file contains {envelope.get('format')}."
        )
    version = envelope.get("version")
    if not isinstance(version, int) or version > SCHEMA_VERSION:
        raise DecodeError(f"unsupported {format} version {version}.")
    fields = envelope.get("fields")
    if not isinstance(fields, dict):
        raise DecodeError(f"{format} has no fields.")
    return fields


def _require(fields: Dict[str, Any], name: str, type_: type) -> Any:
    if name not in fields:
        raise DecodeError(f'required field "{name}" is missing.')
    value = fields[name]
    if not isinstance(value, type_):
        raise DecodeError(f'field "{name}" must be {type_.__name__}.')
    return value


def _check_dense_ids(mapping: Dict[str, int], what: str) -> Dict[str, int]:
    if not all(isinstance(v, int) for v in mapping.values()):
        raise DecodeError(f"{what} ids must be integers.")
    if sorted(mapping.values()) != list(range(len(mapping))):
        raise DecodeError(f"{what} ids are not dense.")
    return dict(sorted(mapping.items(), key=lambda item: item[1]))


def _database_to_fields(store: VoteStore) -> Dict[str, Any]:
    return dict(
        articles=dict(store.articles),
        page_ids=list(store.page_ids),
        votes_for_article=[
            [(int(u), bool(v)) for u, v in votes] for votes in store.votes_for_article
        ],
        total_votes=store.total_votes,
        users=dict(store.users),
    )


def _fields_to_database(fields: Dict[str, Any]) -> VoteStore:
    articles = _check_dense_ids(_require(fields, "articles", dict), "article")
    users = _check_dense_ids(_require(fields, "users", dict), "user")
    votes_for_article = _require(fields, "votes_for_article", list)
    n_articles = len(articles)
    if len(votes_for_article) != n_articles:
        raise DecodeError("the number of vote lists differs from the article count.")
    page_ids = fields.get("page_ids", [""] * n_articles)
    if not isinstance(page_ids, list) or len(page_ids) != n_articles:
        raise DecodeError("the number of page ids differs from the article count.")

    store = VoteStore()
    store.articles = articles
    store.users = users
    store.page_ids = [str(page_id) for page_id in page_ids]
    try:
        store.votes_for_article = [
            [(int(u), bool(v)) for u, v in votes] for votes in votes_for_article
        ]
    except (TypeError, ValueError, OverflowError) as e:
        raise DecodeError(f"malformed vote list: {e}") from e
    n_users = len(users)
    for votes in store.votes_for_article:
        for user_id, _ in votes:
            if user_id < 0 or user_id >= n_users:
                raise DecodeError(f"vote refers to unknown user id {user_id}.")
    store.total_votes = sum(len(votes) for votes in store.votes_for_article)
    if fields.get("total_votes", store.total_votes) != store.total_votes:
        raise DecodeError("total_votes does not match the stored votes.")
    return store


def encode_database(store: VoteStore) -> bytes:
    return _dumps(DATABASE_FORMAT, _database_to_fields(store))


def decode_database(data: bytes) -> VoteStore:
    return _fields_to_database(_loads(data, DATABASE_FORMAT))


def encode_model(model: "PredictionModel") -> bytes:
    return _dumps(
        MODEL_FORMAT,
        dict(
            database=_database_to_fields(model.database),
            user_factors=np.array(model.user_factors, dtype=np.float64),
            article_factors=np.array(model.article_factors, dtype=np.float64),
            seen=[np.array(s, dtype=np.int64) for s in model.seen],
        ),
    )


def decode_model(data: bytes) -> "PredictionModel":
    from .model import PredictionModel, build_seen_filter

    fields = _loads(data, MODEL_FORMAT)
    store = _fields_to_database(_require(fields, "database", dict))
    user_factors = _require(fields, "user_factors", np.ndarray)
    article_factors = _require(fields, "article_factors", np.ndarray)
    seen = build_seen_filter(store)
    if "seen" in fields:
        stored_seen = _require(fields, "seen", list)
        try:
            stored: List[np.ndarray] = [
                np.unique(np.asarray(s, dtype=np.int64)) for s in stored_seen
            ]
        except (TypeError, ValueError, OverflowError) as e:
            raise DecodeError(f"malformed seen filter: {e}") from e
        # the filter must list exactly the articles each user voted on.
        if len(stored) != len(seen) or not all(
            np.array_equal(a, b) for a, b in zip(stored, seen)
        ):
            raise DecodeError("seen filter does not match the stored votes.")
    try:
        return PredictionModel(store, user_factors, article_factors, seen)
    except (TypeError, ValueError) as e:
        raise DecodeError(f"inconsistent prediction model: {e}") from e


def _write_atomic(path: PathLike, data: bytes) -> None:
    target = Path(path)
    tmp_name: Optional[str] = None
    try:
        with tempfile.NamedTemporaryFile(
            dir=target.resolve().parent,
            prefix=f".{target.name}.",
            suffix=".tmp",
            delete=False,
        ) as ofs:
            tmp_name = ofs.name
            ofs.write(data)
            ofs.flush()
            os.fsync(ofs.fileno())
        os.replace(tmp_name, target)
    except OSError as e:
        if tmp_name is not None and os.path.exists(tmp_name):
            os.remove(tmp_name)
        raise FileIOError(f"failed to write {target}: {e}") from e


def _read(path: PathLike) -> bytes:
    try:
        with open(path, "rb") as ifs:
            return ifs.read()
    except OSError as e:
        raise FileIOError(f"failed to read {path}: {e}") from e


def save_database(store: VoteStore, path: PathLike = DEFAULT_DATABASE_PATH) -> None:
    """Writes the database to ``path``, replacing the whole file."""
    _write_atomic(path, encode_database(store))
    get_default_logger().debug(
        "saved database with %d articles, %d users and %d votes to %s.",
        store.n_articles,
        store.n_users,
        store.total_votes,
        path,
    )


def load_database(path: PathLike = DEFAULT_DATABASE_PATH) -> VoteStore:
    """Reads the database from ``path``.

    Raises:
        FileIOError: When the file could not be read.
        DecodeError: When the file is not a wikivote database.
    """
    return decode_database(_read(path))


def save_model(model: "PredictionModel", path: PathLike = DEFAULT_MODEL_PATH) -> None:
    _write_atomic(path, encode_model(model))
    get_default_logger().debug("saved prediction model to %s.", path)


def load_model(path: PathLike = DEFAULT_MODEL_PATH) -> "PredictionModel":
    """Reads the prediction model from ``path``.

    Raises:
        FileIOError: When the file could not be read.
        DecodeError: When the file is not a wikivote prediction model.
    """
    return decode_model(_read(path))


__all__ = [
    "encode_database",
    "decode_database",
    "encode_model",
    "decode_model",
    "save_database",
    "load_database",
    "save_model",
    "load_model",
]
