import json
import logging
from typing import Dict, List, Optional, Tuple

import pytest
import requests

from wikivote import FetchError, VoteStore
from wikivote.update import (
    TOKEN_COOKIE,
    USER_AGENT,
    VOTE_ENDPOINT,
    WIKI_URI,
    Updater,
    WikiClient,
    extract_page_id,
    parse_votes,
)

ARTICLE_TEMPLATE = """<html>
<head>
<script type="text/javascript" src="/common--javascript/init.combined.js"></script>
<script type="text/javascript">
WIKIREQUEST.info.domain = "scp-wiki.wikidot.com";
WIKIREQUEST.info.pageId = {page_id};
WIKIREQUEST.info.lang = "en";
</script>
</head>
<body><div id="page-content">SCP-{number} is an anomalous object.</div></body>
</html>
"""

USER_SPAN = (
    '<span class="printuser avatarhover">'
    '<a href="http://www.wikidot.com/user:info/{slug}"><img class="small" src="avatar.png" alt=""/></a>'
    '<a href="http://www.wikidot.com/user:info/{slug}">{name}</a></span>'
)
DELETED_SPAN = (
    '<span class="printuser deleted"><img class="small" src="deleted.png" alt=""/>'
    "(account deleted)</span>"
)
VOTE_SPAN = '<span style="color:#777">&nbsp;{sign}</span>'


def vote_body(rows: List[Tuple[Optional[str], str]]) -> str:
    spans = []
    for name, sign in rows:
        if name is None:
            spans.append(DELETED_SPAN)
        else:
            spans.append(USER_SPAN.format(slug=name.lower(), name=name))
        spans.append(VOTE_SPAN.format(sign=sign))
    return (
        '<div class="who-rated-page-list">'
        + "<br/>".join(spans)
        + '</div><div class="footer"><span>Votes: 42</span></div>'
    )


class FakeClient:
    def __init__(
        self,
        pages: Dict[str, Optional[str]],
        votes: Dict[str, Optional[str]],
        token: Optional[str] = "guest-token",
    ) -> None:
        self.pages = pages
        self.votes = votes
        self.token = token
        self.heads: List[str] = []
        self.posts: List[Tuple[str, Dict[str, str]]] = []

    def head(self, url: str) -> None:
        self.heads.append(url)

    def get(self, url: str) -> Optional[str]:
        return self.pages.get(url)

    def post(self, url: str, form: Dict[str, str]) -> Optional[str]:
        self.posts.append((url, form))
        return self.votes.get(form["pageId"])

    def cookie(self, name: str) -> Optional[str]:
        return self.token if name == TOKEN_COOKIE else None


def article(number: int, page_id: str) -> str:
    return ARTICLE_TEMPLATE.replace("{page_id}", page_id).replace(
        "{number}", str(number)
    )


def answer(body: str) -> str:
    return json.dumps({"status": "ok", "body": body, "callbackIndex": "1"})


def test_extract_page_id() -> None:
    assert extract_page_id(article(173, "1956234")) == "1956234"
    # scripts outside of the head do not count
    assert (
        extract_page_id(
            "<html><head></head><body><script>WIKIREQUEST.info.pageId = 12;</script></body></html>"
        )
        is None
    )
    assert extract_page_id("<html><head><title>404</title></head></html>") is None


def test_parse_votes() -> None:
    body = vote_body([("Alice", "+"), (None, "-"), ("Bob", "-"), ("Carol", "+")])
    assert parse_votes(body) == [("Alice", True), ("Bob", False), ("Carol", True)]
    assert parse_votes('<div class="who-rated-page-list"></div>') == []


def test_parse_votes_dangling_user(caplog: pytest.LogCaptureFixture) -> None:
    logger = logging.getLogger("wikivote-test-update")
    body = (
        '<div class="who-rated-page-list">'
        + USER_SPAN.format(slug="alice", name="Alice")
        + VOTE_SPAN.format(sign="+")
        + USER_SPAN.format(slug="bob", name="Bob")
        + "</div>"
    )
    with caplog.at_level(logging.WARNING, logger="wikivote-test-update"):
        assert parse_votes(body, logger) == [("Alice", True)]
    assert len(caplog.records) == 1


def test_update() -> None:
    client = FakeClient(
        pages={
            WIKI_URI + "scp-001": article(1, "100"),
            WIKI_URI + "scp-002": article(2, "200"),
            WIKI_URI + "scp-003": "<html><head></head></html>",
            WIKI_URI + "scp-005": article(5, "500"),
        },
        votes={
            "100": answer(vote_body([("Alice", "+"), ("Bob", "-")])),
            "200": answer(vote_body([("Bob", "+"), (None, "+"), ("Carol", "+")])),
            "500": "not json",
        },
    )
    updater = Updater(client=client)
    store = updater.update(1, 5)
    assert store is updater.database
    assert client.heads == [WIKI_URI]
    assert store.article_keys == ["scp-001", "scp-002"]
    assert store.page_ids == ["100", "200"]
    assert store.user_names == ["Alice", "Bob", "Carol"]
    assert store.votes_of("scp-001") == [(0, True), (1, False)]
    assert store.votes_of("scp-002") == [(1, True), (2, True)]
    assert store.total_votes == 4

    url, form = client.posts[0]
    assert url == VOTE_ENDPOINT
    assert form["pageId"] == "100"
    assert form["moduleName"] == "pagerate/WhoRatedPageModule"
    assert form[TOKEN_COOKIE] == "guest-token"


def test_update_replaces_known_articles() -> None:
    store = VoteStore()
    dave = store.add_user("Dave")
    store.add_article("scp-010", "1000", [(dave, False)])
    client = FakeClient(
        pages={WIKI_URI + "scp-010": article(10, "1000")},
        votes={"1000": answer(vote_body([("Alice", "+")]))},
    )
    updater = Updater(client=client, database=store)
    assert updater.update_article("scp-010", "guest-token")
    assert store.n_articles == 1
    assert store.votes_of("scp-010") == [(1, True)]
    assert store.total_votes == 1


@pytest.mark.parametrize(
    "votes",
    [{}, {"100": "[]"}, {"100": json.dumps({"status": "ok"})}],
)
def test_update_article_failures(votes: Dict[str, Optional[str]]) -> None:
    client = FakeClient(pages={WIKI_URI + "scp-001": article(1, "100")}, votes=votes)
    updater = Updater(client=client)
    assert not updater.update_article("scp-001", "guest-token")
    assert not updater.update_article("scp-404", "guest-token")
    assert updater.database.n_articles == 0


def test_missing_token() -> None:
    updater = Updater(client=FakeClient(pages={}, votes={}, token=None))
    with pytest.raises(FetchError):
        updater.update(1, 2)


class FakeResponse:
    def __init__(self, status_code: int, text: str) -> None:
        self.status_code = status_code
        self.text = text

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} Error")


class FakeSession:
    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.cookies = requests.cookies.RequestsCookieJar()
        self.requests: List[Tuple[str, str, Optional[Dict[str, str]], float]] = []

    def request(
        self,
        method: str,
        url: str,
        data: Optional[Dict[str, str]] = None,
        timeout: float = 0.0,
    ) -> FakeResponse:
        self.requests.append((method, url, data, timeout))
        if url.endswith("offline"):
            raise requests.ConnectionError("connection refused")
        if url.endswith("missing"):
            return FakeResponse(404, "not found")
        if method == "HEAD":
            self.cookies.set(TOKEN_COOKIE, "guest-token")
        return FakeResponse(200, f"{method} {url}")


def test_wiki_client() -> None:
    client = WikiClient(timeout=2.5)
    assert client.session.headers["User-Agent"] == USER_AGENT
    session = FakeSession()
    client.session = session  # type: ignore

    assert client.cookie(TOKEN_COOKIE) is None
    client.head(WIKI_URI)
    assert client.cookie(TOKEN_COOKIE) == "guest-token"

    assert client.get(WIKI_URI + "scp-001") == "GET " + WIKI_URI + "scp-001"
    assert client.post(VOTE_ENDPOINT, {"pageId": "1"}) == "POST " + VOTE_ENDPOINT
    assert session.requests[-1] == ("POST", VOTE_ENDPOINT, {"pageId": "1"}, 2.5)

    assert client.get(WIKI_URI + "missing") is None
    assert client.post(WIKI_URI + "offline", {}) is None
    with pytest.raises(FetchError):
        client.head(WIKI_URI + "offline")
