import copy
from typing import Any, Dict, Iterable, List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy import sparse as sps

from .definitions import SignedVoteMatrix, VoteList
from .exceptions import DuplicateArticleError, UnknownArticleError, UnknownUserError


def _normalize_votes(votes: Iterable[Tuple[Any, Any]], n_users: int) -> VoteList:
    result: VoteList = []
    for user_id, vote in votes:
        user_id = int(user_id)
        if user_id < 0 or user_id >= n_users:
            raise UnknownUserError(user_id)
        if isinstance(vote, (bool, np.bool_)):
            upvote = bool(vote)
        else:
            upvote = vote > 0
        result.append((user_id, upvote))
    return result


class VoteStore(object):
    r"""Database of articles and the votes users have cast on them.

    Articles and users are assigned dense integer ids in the order they are first
    inserted. Ids are never reused nor reordered, so they stay valid after
    a save/load round trip.

    Examples:

        >>> from wikivote import VoteStore
        >>> store = VoteStore()
        >>> alice = store.add_user("alice")
        >>> store.add_article("scp-173", "1956234", [(alice, True)])
        0
        >>> store.total_votes
        1
    """

    def __init__(self) -> None:
        # article key -> article id. Insertion order equals id order.
        self.articles: Dict[str, int] = {}
        self.page_ids: List[str] = []
        self.votes_for_article: List[VoteList] = []
        self.total_votes: int = 0
        # user name -> user id. Insertion order equals id order.
        self.users: Dict[str, int] = {}

    @property
    def n_articles(self) -> int:
        return len(self.page_ids)

    @property
    def n_users(self) -> int:
        return len(self.users)

    @property
    def article_keys(self) -> List[str]:
        """Article keys indexed by article id."""
        return list(self.articles.keys())

    @property
    def user_names(self) -> List[str]:
        """User names indexed by user id."""
        return list(self.users.keys())

    def add_article(
        self, key: str, page_id: str, votes: Iterable[Tuple[Any, Any]]
    ) -> int:
        r"""Adds a new article and all its votes.

        Args:
            key:
                The article key, e.g. ``"scp-173"``.
            page_id:
                The page id of the article on the wiki. Stored as is for later requests.
            votes:
                ``(user_id, upvote)`` tuples. ``upvote`` is ``True`` for an upvote and
                ``False`` for a downvote.

        Raises:
            DuplicateArticleError: When ``key`` is already in the database.
            UnknownUserError: When a vote refers to a user id not allocated by :meth:`add_user`.

        Returns:
            The id of the new article.
        """
        if key in self.articles:
            raise DuplicateArticleError(key)
        normalized = _normalize_votes(votes, self.n_users)
        article_id = self.n_articles
        self.articles[key] = article_id
        self.page_ids.append(page_id)
        self.votes_for_article.append(normalized)
        self.total_votes += len(normalized)
        return article_id

    def update_article(self, key: str, votes: Iterable[Tuple[Any, Any]]) -> None:
        r"""Replaces the votes of an existing article. Its id does not change.

        Raises:
            UnknownArticleError: When ``key`` is not in the database.
            UnknownUserError: When a vote refers to an unknown user id.
        """
        article_id = self.articles.get(key)
        if article_id is None:
            raise UnknownArticleError(key)
        normalized = _normalize_votes(votes, self.n_users)
        self.total_votes -= len(self.votes_for_article[article_id])
        self.total_votes += len(normalized)
        self.votes_for_article[article_id] = normalized

    def add_user(self, name: str) -> int:
        """Adds a user if not present. Returns the user id."""
        user_id = self.users.get(name)
        if user_id is not None:
            return user_id
        user_id = len(self.users)
        self.users[name] = user_id
        return user_id

    def page_id_of(self, key: str) -> Optional[str]:
        article_id = self.articles.get(key)
        if article_id is None:
            return None
        return self.page_ids[article_id]

    def article_id(self, key: str) -> Optional[int]:
        return self.articles.get(key)

    def user_id(self, name: str) -> Optional[int]:
        return self.users.get(name)

    def votes_of(self, key: str) -> VoteList:
        article_id = self.articles.get(key)
        if article_id is None:
            raise UnknownArticleError(key)
        return list(self.votes_for_article[article_id])

    def to_coo(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        r"""Flattens all the votes into parallel arrays, article by article.

        Returns:
            A tuple of

                1. article ids (``int64``),
                2. user ids (``int64``),
                3. signs (``float64``, ``+1.0`` for upvotes and ``-1.0`` for downvotes).
        """
        article_indices = np.empty(self.total_votes, dtype=np.int64)
        user_indices = np.empty(self.total_votes, dtype=np.int64)
        signs = np.empty(self.total_votes, dtype=np.float64)
        position = 0
        for article_id, votes in enumerate(self.votes_for_article):
            end = position + len(votes)
            article_indices[position:end] = article_id
            for offset, (user_id, upvote) in enumerate(votes):
                user_indices[position + offset] = user_id
                signs[position + offset] = 1.0 if upvote else -1.0
            position = end
        return article_indices, user_indices, signs

    def to_sparse(self) -> SignedVoteMatrix:
        """The signed article/user matrix. Duplicate votes are summed."""
        article_indices, user_indices, signs = self.to_coo()
        return sps.csr_matrix(
            (signs, (article_indices, user_indices)),
            shape=(self.n_articles, self.n_users),
        )

    def to_dataframe(self) -> pd.DataFrame:
        r"""Converts the votes into a long-format dataframe.

        Returns:
            A ``pd.DataFrame`` with columns ``["article", "page_id", "user", "vote"]``,
            one row per vote. Articles without votes do not appear.
        """
        article_indices, user_indices, signs = self.to_coo()
        article_keys = np.asarray(self.article_keys, dtype=object)
        page_ids = np.asarray(self.page_ids, dtype=object)
        user_names = np.asarray(self.user_names, dtype=object)
        return pd.DataFrame(
            {
                "article": article_keys[article_indices],
                "page_id": page_ids[article_indices],
                "user": user_names[user_indices],
                "vote": signs > 0,
            }
        )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        article_column: str = "article",
        user_column: str = "user",
        vote_column: str = "vote",
        page_id_column: Optional[str] = "page_id",
    ) -> "VoteStore":
        r"""Builds a store from a long-format vote dataframe.

        Articles and users receive ids in the order of their first appearance.
        If ``page_id_column`` is ``None`` or missing, the page ids will be empty strings.
        """
        store = cls()
        has_page_id = page_id_column is not None and page_id_column in df.columns
        articles: List[str] = df[article_column].astype(str).tolist()
        users: List[str] = df[user_column].astype(str).tolist()
        vote_values: List[Union[bool, float]] = df[vote_column].tolist()
        page_id_values: List[str] = (
            df[page_id_column].astype(str).tolist()
            if has_page_id
            else [""] * df.shape[0]
        )
        grouped: Dict[str, List[Tuple[int, Union[bool, float]]]] = {}
        page_ids: Dict[str, str] = {}
        for article, user, vote, page_id in zip(
            articles, users, vote_values, page_id_values
        ):
            user_id = store.add_user(user)
            grouped.setdefault(article, []).append((user_id, vote))
            page_ids.setdefault(article, page_id)
        for article, votes in grouped.items():
            store.add_article(article, page_ids[article], votes)
        return store

    def copy(self) -> "VoteStore":
        return copy.deepcopy(self)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, VoteStore):
            return NotImplemented
        return (
            self.articles == other.articles
            and self.page_ids == other.page_ids
            and self.votes_for_article == other.votes_for_article
            and self.total_votes == other.total_votes
            and self.users == other.users
        )

    def __repr__(self) -> str:
        return (
            f"VoteStore(n_articles={self.n_articles}, n_users={self.n_users}, "
            f"total_votes={self.total_votes})"
        )
