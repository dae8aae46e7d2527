import pytest

from wikivote import VoteStore


@pytest.fixture()
def small_store() -> VoteStore:
    r"""3 articles, 5 users and 17 votes."""
    store = VoteStore()
    alice, bob, carol, dave, erin = [
        store.add_user(name) for name in ["alice", "bob", "carol", "dave", "erin"]
    ]
    store.add_article(
        "scp-001",
        "100",
        [(alice, True), (bob, True), (carol, False), (dave, True), (erin, True)],
    )
    store.add_article(
        "scp-002",
        "200",
        [
            (alice, False),
            (bob, True),
            (carol, True),
            (dave, False),
            (erin, True),
            (carol, True),
        ],
    )
    store.add_article(
        "scp-003",
        "300",
        [
            (alice, True),
            (bob, False),
            (dave, False),
            (erin, False),
            (bob, False),
            (alice, True),
        ],
    )
    return store


@pytest.fixture()
def opposed_store() -> VoteStore:
    r"""Two users who disagree on both of two articles."""
    store = VoteStore()
    u0 = store.add_user("u0")
    u1 = store.add_user("u1")
    store.add_article("a0", "p0", [(u0, True), (u1, False)])
    store.add_article("a1", "p1", [(u0, False), (u1, True)])
    return store
