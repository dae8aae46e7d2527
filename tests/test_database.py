import numpy as np
import pandas as pd
import pytest

from wikivote import (
    DuplicateArticleError,
    UnknownArticleError,
    UnknownUserError,
    VoteStore,
)


def check_total(store: VoteStore) -> None:
    assert store.total_votes == sum(len(v) for v in store.votes_for_article)


def test_empty_store() -> None:
    store = VoteStore()
    assert store.n_users == 0
    assert store.n_articles == 0
    assert store.total_votes == 0
    a, u, s = store.to_coo()
    assert a.shape == u.shape == s.shape == (0,)
    assert store.to_sparse().shape == (0, 0)


def test_singleton() -> None:
    store = VoteStore()
    assert store.add_user("alice") == 0
    assert store.add_article("a1", "p1", [(0, True)]) == 0
    assert store.total_votes == 1
    assert store.page_id_of("a1") == "p1"
    assert store.page_id_of("a2") is None


def test_add_user_is_idempotent() -> None:
    store = VoteStore()
    assert store.add_user("alice") == 0
    assert store.add_user("bob") == 1
    assert store.add_user("alice") == 0
    assert store.n_users == 2
    assert store.user_names == ["alice", "bob"]


def test_duplicate_article() -> None:
    store = VoteStore()
    alice = store.add_user("alice")
    store.add_article("a0", "p0", [(alice, True)])
    with pytest.raises(DuplicateArticleError):
        store.add_article("a0", "p1", [])
    assert store.n_articles == 1
    check_total(store)


def test_vote_from_unknown_user() -> None:
    store = VoteStore()
    store.add_user("alice")
    with pytest.raises(UnknownUserError):
        store.add_article("a0", "p0", [(1, True)])
    assert store.n_articles == 0
    assert store.total_votes == 0


def test_update_mutates_totals() -> None:
    store = VoteStore()
    u0 = store.add_user("u0")
    u1 = store.add_user("u1")
    store.add_article("a0", "p0", [(u0, True), (u1, True)])
    assert store.total_votes == 2
    store.update_article("a0", [(u0, False)])
    assert store.total_votes == 1
    assert store.votes_for_article[0] == [(u0, False)]
    assert store.article_id("a0") == 0
    check_total(store)

    with pytest.raises(UnknownArticleError):
        store.update_article("a1", [])


def test_ids_are_dense(small_store: VoteStore) -> None:
    assert sorted(small_store.articles.values()) == list(range(small_store.n_articles))
    assert sorted(small_store.users.values()) == list(range(small_store.n_users))
    assert len(small_store.page_ids) == len(small_store.votes_for_article)
    for votes in small_store.votes_for_article:
        for user_id, _ in votes:
            assert 0 <= user_id < small_store.n_users
    assert small_store.total_votes == 17
    check_total(small_store)


def test_total_under_random_operations() -> None:
    rns = np.random.RandomState(0)
    store = VoteStore()
    for i in range(10):
        store.add_user(f"user-{i}")
    for step in range(100):
        n_votes = int(rns.randint(0, 8))
        votes = [
            (int(rns.randint(0, store.n_users)), bool(rns.randint(0, 2)))
            for _ in range(n_votes)
        ]
        if store.n_articles and rns.rand() < 0.4:
            key = store.article_keys[int(rns.randint(0, store.n_articles))]
            store.update_article(key, votes)
        else:
            store.add_article(f"article-{step}", str(step), votes)
        check_total(store)


def test_polarity_normalization() -> None:
    store = VoteStore()
    alice = store.add_user("alice")
    store.add_article("a0", "p0", [(alice, 1), (alice, -1), (np.int64(alice), np.bool_(True))])
    assert store.votes_for_article[0] == [(0, True), (0, False), (0, True)]


def test_sparse_and_coo(small_store: VoteStore) -> None:
    a, u, s = small_store.to_coo()
    assert a.shape[0] == small_store.total_votes
    assert np.all(np.diff(a) >= 0)
    assert set(np.unique(s)) == {-1.0, 1.0}
    X = small_store.to_sparse()
    assert X.shape == (3, 5)
    # carol upvoted scp-002 twice, duplicates are summed.
    assert X[1, 2] == 2.0
    # alice upvoted scp-003 twice.
    assert X[2, 0] == 2.0
    assert X[0, 2] == -1.0


def test_dataframe_round_trip(small_store: VoteStore) -> None:
    df = small_store.to_dataframe()
    assert list(df.columns) == ["article", "page_id", "user", "vote"]
    assert df.shape[0] == small_store.total_votes
    restored = VoteStore.from_dataframe(df)
    assert restored == small_store


def test_from_dataframe_without_page_id() -> None:
    df = pd.DataFrame(
        {
            "article": ["x", "x", "y"],
            "user": ["bob", "alice", "bob"],
            "vote": [True, False, True],
        }
    )
    store = VoteStore.from_dataframe(df)
    assert store.articles == {"x": 0, "y": 1}
    assert store.users == {"bob": 0, "alice": 1}
    assert store.page_ids == ["", ""]
    assert store.votes_for_article == [[(0, True), (1, False)], [(0, True)]]


def test_copy_is_independent(small_store: VoteStore) -> None:
    copied = small_store.copy()
    assert copied == small_store
    copied.update_article("scp-001", [])
    assert copied != small_store
    assert small_store.total_votes == 17
