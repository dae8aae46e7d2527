from pathlib import Path
from typing import List, Sequence, Tuple, Union

import numpy as np
from scipy import sparse as sps

from .database import VoteStore
from .definitions import DenseMatrix, DenseScoreArray, IndexArray
from .exceptions import UnknownArticleError, UnknownUserError


def build_seen_filter(database: VoteStore) -> List[IndexArray]:
    r"""For each user, the sorted ids of the articles the user voted on.

    Computed in a single pass over the votes by transposing the
    article/user relation.
    """
    article_indices, user_indices, _ = database.to_coo()
    X_user_article = sps.csr_matrix(
        (np.ones(article_indices.shape[0]), (user_indices, article_indices)),
        shape=(database.n_users, database.n_articles),
    )
    X_user_article.sum_duplicates()
    X_user_article.sort_indices()
    indptr = X_user_article.indptr
    indices = X_user_article.indices.astype(np.int64)
    return [indices[indptr[u] : indptr[u + 1]] for u in range(database.n_users)]


def _freeze(matrix: DenseMatrix) -> DenseMatrix:
    result: DenseMatrix = np.asarray(matrix, dtype=np.float64)
    result.setflags(write=False)
    return result


def _freeze_index(index: IndexArray, n_articles: int) -> IndexArray:
    result: IndexArray = np.unique(np.asarray(index, dtype=np.int64))
    if result.shape[0] and (result[0] < 0 or result[-1] >= n_articles):
        raise ValueError("seen refers to an unknown article id.")
    result.setflags(write=False)
    return result


def _top_k(
    scores: DenseScoreArray, excluded: IndexArray, k: int, names: Sequence[str]
) -> List[Tuple[str, float]]:
    if k <= 0:
        return []
    allowed = np.ones(scores.shape[0], dtype=bool)
    allowed[excluded] = False
    candidates = np.flatnonzero(allowed)
    candidate_scores = scores[candidates]
    # descending score, NaN last, ties by ascending id.
    order = np.lexsort(
        (candidates, -candidate_scores, np.isnan(candidate_scores))
    )
    return [(names[i], float(scores[i])) for i in candidates[order[:k]]]


class PredictionModel(object):
    r"""The trained latent factor model.

    The predicted vote of a user ``u`` on an article ``a`` is the inner product of
    ``user_factors[u]`` and ``article_factors[a]``. Articles a user has already
    voted on are never recommended.

    Args:
        database:
            The vote database the model was trained on.
        user_factors:
            User embedding of shape ``(database.n_users, n_factors)``.
        article_factors:
            Article embedding of shape ``(database.n_articles, n_factors)``.
        seen:
            For each user, the article ids the user has voted on.

    Raises:
        ValueError: When the shapes are inconsistent with the database.
    """

    def __init__(
        self,
        database: VoteStore,
        user_factors: DenseMatrix,
        article_factors: DenseMatrix,
        seen: List[IndexArray],
    ) -> None:
        self._database = database
        self._user_factors = _freeze(user_factors)
        self._article_factors = _freeze(article_factors)
        if self._user_factors.ndim != 2 or self._article_factors.ndim != 2:
            raise ValueError("factor matrices must be 2-dimensional.")
        n_factors = self._user_factors.shape[1]
        if n_factors < 1:
            raise ValueError("at least one latent factor is required.")
        if self._user_factors.shape != (database.n_users, n_factors):
            raise ValueError(
                f"user_factors has shape {self._user_factors.shape}, expected {(database.n_users, n_factors)}."
            )
        if self._article_factors.shape != (database.n_articles, n_factors):
            raise ValueError(
                f"article_factors has shape {self._article_factors.shape}, expected {(database.n_articles, n_factors)}."
            )
        if len(seen) != database.n_users:
            raise ValueError("seen must have one entry per user.")
        self._seen = [_freeze_index(s, database.n_articles) for s in seen]
        self._user_names = database.user_names
        self._article_keys = database.article_keys

    @property
    def database(self) -> VoteStore:
        return self._database

    @property
    def user_factors(self) -> DenseMatrix:
        return self._user_factors

    @property
    def article_factors(self) -> DenseMatrix:
        return self._article_factors

    @property
    def seen(self) -> List[IndexArray]:
        return self._seen

    @property
    def n_factors(self) -> int:
        return int(self._user_factors.shape[1])

    def _user_index(self, user_name: str) -> int:
        user_id = self._database.user_id(user_name)
        if user_id is None:
            raise UnknownUserError(user_name)
        return user_id

    def _article_index(self, article_key: str) -> int:
        article_id = self._database.article_id(article_key)
        if article_id is None:
            raise UnknownArticleError(article_key)
        return article_id

    def predict(self, user_name: str, article_key: str) -> float:
        """The predicted vote of a user on an article."""
        user_id = self._user_index(user_name)
        article_id = self._article_index(article_key)
        return float(self._user_factors[user_id].dot(self._article_factors[article_id]))

    def has_seen(self, user_name: str, article_key: str) -> bool:
        user_id = self._user_index(user_name)
        article_id = self._article_index(article_key)
        seen = self._seen[user_id]
        position = int(np.searchsorted(seen, article_id))
        return position < seen.shape[0] and int(seen[position]) == article_id

    def top_articles_for_user(
        self, user_name: str, k: int = 10
    ) -> List[Tuple[str, float]]:
        r"""The articles the user will most likely upvote.

        Args:
            user_name: The name of the user.
            k: Maximal number of articles returned.

        Raises:
            UnknownUserError: When the user is not in the model.

        Returns:
            At most ``k`` tuples of ``(article_key, predicted_vote)``, sorted by descending
            prediction. Articles the user has already voted on are excluded.
        """
        user_id = self._user_index(user_name)
        scores: DenseScoreArray = self._article_factors.dot(self._user_factors[user_id])
        return _top_k(scores, self._seen[user_id], k, self._article_keys)

    def top_users_for_article(
        self, article_key: str, k: int = 10
    ) -> List[Tuple[str, float]]:
        r"""The users who will most likely upvote the article.

        Args:
            article_key: The key of the article.
            k: Maximal number of users returned.

        Raises:
            UnknownArticleError: When the article is not in the model.

        Returns:
            At most ``k`` tuples of ``(user_name, predicted_vote)``, sorted by descending
            prediction. Users who have already voted on the article are excluded.
        """
        article_id = self._article_index(article_key)
        scores: DenseScoreArray = self._user_factors.dot(
            self._article_factors[article_id]
        )
        voters = np.asarray(
            [user_id for user_id, _ in self._database.votes_for_article[article_id]],
            dtype=np.int64,
        )
        return _top_k(scores, voters, k, self._user_names)

    def save(self, path: Union[str, Path]) -> None:
        from .persistence import save_model

        save_model(self, path)

    @classmethod
    def load(cls, path: Union[str, Path]) -> "PredictionModel":
        from .persistence import load_model

        return load_model(path)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PredictionModel):
            return NotImplemented
        return (
            self._database == other._database
            and np.array_equal(self._user_factors, other._user_factors, equal_nan=True)
            and np.array_equal(
                self._article_factors, other._article_factors, equal_nan=True
            )
            and len(self._seen) == len(other._seen)
            and all(np.array_equal(a, b) for a, b in zip(self._seen, other._seen))
        )

    def __repr__(self) -> str:
        return (
            f"PredictionModel(n_users={self._database.n_users}, "
            f"n_articles={self._database.n_articles}, n_factors={self.n_factors})"
        )
