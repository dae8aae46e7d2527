r"""Scrapes articles and their votes from the wiki into a :class:`VoteStore`.

Only ``scp-NNN`` articles are visited. The vote list of an article is served by
the ``pagerate/WhoRatedPageModule`` module of the wiki's ajax connector, which
requires the page id of the article and the ``wikidot_token7`` cookie every
(guest) session receives.
"""
import json
import logging
import re
from html.parser import HTMLParser
from typing import Dict, List, Optional, Tuple

import requests

from .database import VoteStore
from .default_logger import get_default_logger
from .exceptions import FetchError

WIKI_URI = "https://scp-wiki.wikidot.com/"
VOTE_ENDPOINT = "https://scp-wiki.wikidot.com/ajax-module-connector.php"
USER_AGENT = "wikivote-scp-vote-counter/0.1.0"
TOKEN_COOKIE = "wikidot_token7"

_PAGE_ID_PATTERN = re.compile(r"WIKIREQUEST\.info\.pageId\s*=\s*(\d+)\s*;")


class WikiClient(object):
    r"""A thin wrapper around a ``requests.Session`` keeping the wiki's session cookies.

    Failed requests are logged at debug level and reported as ``None``.

    Args:
        timeout: Timeout of each request in seconds. Defaults to 5.0.
        user_agent: The ``User-Agent`` header sent with every request.
    """

    def __init__(self, timeout: float = 5.0, user_agent: str = USER_AGENT) -> None:
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": user_agent})

    def _request(
        self, method: str, url: str, form: Optional[Dict[str, str]] = None
    ) -> Optional[requests.Response]:
        try:
            response = self.session.request(
                method, url, data=form, timeout=self.timeout
            )
            response.raise_for_status()
        except requests.RequestException as e:
            get_default_logger().debug("%s %s failed: %s", method, url, e)
            return None
        return response

    def head(self, url: str) -> None:
        """Sends a HEAD request, only to receive the session cookies."""
        if self._request("HEAD", url) is None:
            raise FetchError(f"HEAD {url} failed.")

    def get(self, url: str) -> Optional[str]:
        response = self._request("GET", url)
        return None if response is None else response.text

    def post(self, url: str, form: Dict[str, str]) -> Optional[str]:
        response = self._request("POST", url, form)
        return None if response is None else response.text

    def cookie(self, name: str) -> Optional[str]:
        value: Optional[str] = self.session.cookies.get(name)
        return value


class _HeadScriptParser(HTMLParser):
    def __init__(self) -> None:
        super().__init__()
        self.scripts: List[str] = []
        self._in_head = False
        self._in_inline_script = False

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if tag == "head":
            self._in_head = True
        elif tag == "script" and self._in_head:
            self._in_inline_script = "src" not in dict(attrs)
            if self._in_inline_script:
                self.scripts.append("")

    def handle_endtag(self, tag: str) -> None:
        if tag == "head":
            self._in_head = False
        elif tag == "script":
            self._in_inline_script = False

    def handle_data(self, data: str) -> None:
        if self._in_inline_script:
            self.scripts[-1] += data


class _Span(object):
    def __init__(self) -> None:
        self.text = ""
        self.anchors: List[str] = []


class _VoteListParser(HTMLParser):
    """Collects the spans of the first ``div`` in document order."""

    def __init__(self) -> None:
        super().__init__()
        self.spans: List[_Span] = []
        self._div_depth = 0
        self._div_done = False
        self._open_spans: List[_Span] = []
        self._open_anchors: List[Tuple[_Span, int]] = []
        self._anchor_texts: List[str] = []

    def handle_starttag(self, tag: str, attrs: List[Tuple[str, Optional[str]]]) -> None:
        if self._div_done:
            return
        if tag == "div":
            self._div_depth += 1
        elif self._div_depth == 0:
            return
        elif tag == "span":
            span = _Span()
            self.spans.append(span)
            self._open_spans.append(span)
        elif tag == "a" and self._open_spans:
            span = self._open_spans[-1]
            span.anchors.append("")
            self._open_anchors.append((span, len(span.anchors) - 1))

    def handle_endtag(self, tag: str) -> None:
        if self._div_done or self._div_depth == 0:
            return
        if tag == "div":
            self._div_depth -= 1
            if self._div_depth == 0:
                self._div_done = True
        elif tag == "span" and self._open_spans:
            self._open_spans.pop()
        elif tag == "a" and self._open_anchors:
            self._open_anchors.pop()

    def handle_data(self, data: str) -> None:
        if self._div_done or self._div_depth == 0:
            return
        for span in self._open_spans:
            span.text += data
        for span, index in self._open_anchors:
            span.anchors[index] += data


def extract_page_id(article_html: str) -> Optional[str]:
    r"""Extracts the internal page id from the inline scripts of the page head.

    Returns:
        The page id as a string, or ``None`` if the page does not define it.
    """
    parser = _HeadScriptParser()
    parser.feed(article_html)
    parser.close()
    for script in parser.scripts:
        match = _PAGE_ID_PATTERN.search(script)
        if match is not None:
            return match.group(1)
    return None


def parse_votes(
    vote_html: str, logger: Optional[logging.Logger] = None
) -> List[Tuple[str, bool]]:
    r"""Parses the body of the ``WhoRatedPageModule`` answer.

    The spans alternate between a user span, whose second anchor holds the user name,
    and a vote span holding ``+`` or ``-``. Users without a second anchor
    (deleted accounts) are skipped.

    Returns:
        ``(user_name, upvote)`` tuples in the order of the page.
    """
    if logger is None:
        logger = get_default_logger()
    parser = _VoteListParser()
    parser.feed(vote_html)
    parser.close()
    result: List[Tuple[str, bool]] = []
    spans = iter(parser.spans)
    for user_span in spans:
        vote_span = next(spans, None)
        if vote_span is None:
            logger.warning("Failed to extract some votes: dangling user entry.")
            break
        if len(user_span.anchors) < 2:
            continue
        result.append((user_span.anchors[1].strip(), vote_span.text.strip() == "+"))
    return result


class Updater(object):
    r"""Downloads articles and votes from the wiki into a :class:`VoteStore`.

    Args:
        client:
            The HTTP client. Anything with the methods of :class:`WikiClient` will do.
            Defaults to a new :class:`WikiClient`.
        database:
            The store to fill. Defaults to a new, empty store.
        logger:
            The logger. Defaults to the package logger.
    """

    def __init__(
        self,
        client: Optional[WikiClient] = None,
        database: Optional[VoteStore] = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = WikiClient() if client is None else client
        self.database = VoteStore() if database is None else database
        self.logger = get_default_logger() if logger is None else logger

    def _obtain_token(self) -> str:
        self.logger.info("Obtaining %s...", TOKEN_COOKIE)
        self.client.head(WIKI_URI)
        token = self.client.cookie(TOKEN_COOKIE)
        if token is None:
            raise FetchError(f"the wiki did not set the {TOKEN_COOKIE} cookie.")
        self.logger.debug("%s: %s", TOKEN_COOKIE, token)
        return token

    def _fetch_votes(self, page_id: str, token: str) -> Optional[str]:
        return self.client.post(
            VOTE_ENDPOINT,
            {
                "pageId": page_id,
                "moduleName": "pagerate/WhoRatedPageModule",
                "callbackIndex": "1",
                TOKEN_COOKIE: token,
            },
        )

    def update_article(self, article_key: str, token: str) -> bool:
        r"""Downloads a single article with its votes and stores it.

        Returns:
            ``True`` if the article has been stored, ``False`` if it was skipped.
        """
        article_html = self.client.get(WIKI_URI + article_key)
        if article_html is None:
            self.logger.info("Failed to download article %s.", article_key)
            return False

        page_id = extract_page_id(article_html)
        if page_id is None:
            self.logger.warning("Failed to extract page id for article %s", article_key)
            return False

        answer_text = self._fetch_votes(page_id, token)
        if answer_text is None:
            self.logger.warning("Failed to download votes for article %s", article_key)
            return False
        try:
            answer = json.loads(answer_text)
        except json.JSONDecodeError:
            self.logger.warning("Failed to parse vote answer for article %s", article_key)
            return False
        body = answer.get("body") if isinstance(answer, dict) else None
        if not isinstance(body, str):
            self.logger.warning(
                "Failed to extract vote body for article %s", article_key
            )
            return False

        votes = [
            (self.database.add_user(user_name), upvote)
            for user_name, upvote in parse_votes(body, self.logger)
        ]
        if self.database.article_id(article_key) is None:
            self.database.add_article(article_key, page_id, votes)
        else:
            self.database.update_article(article_key, votes)
        self.logger.info(
            "page id: %s. added article %s to database with %d votes",
            page_id,
            article_key,
            len(votes),
        )
        return True

    def update(self, first: int, last: int) -> VoteStore:
        r"""Scrapes ``scp-{first:03d}`` to ``scp-{last:03d}`` (both inclusive).

        Articles that cannot be downloaded or parsed are logged and skipped.

        Raises:
            FetchError: When the session token could not be obtained.

        Returns:
            The filled store.
        """
        self.logger.info("Updating database...")
        token = self._obtain_token()
        for number in range(first, last + 1):
            self.update_article(f"scp-{number:03d}", token)
        self.logger.info(
            "Finished generating database: %d articles, %d users, %d votes.",
            self.database.n_articles,
            self.database.n_users,
            self.database.total_votes,
        )
        return self.database


__all__ = ["WikiClient", "Updater", "extract_page_id", "parse_votes"]
