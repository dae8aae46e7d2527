class WikiVoteError(Exception):
    """The base class of all the errors raised by wikivote."""


class FileIOError(WikiVoteError):
    """A database or model file could not be opened, read or written."""


class DecodeError(WikiVoteError):
    """The file contents do not conform to the wikivote binary encoding."""


class DuplicateArticleError(WikiVoteError, KeyError):
    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Article {self.key} is already in the database."


class UnknownArticleError(WikiVoteError, KeyError):
    def __init__(self, key: str) -> None:
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Article {self.key} not found."


class UnknownUserError(WikiVoteError, KeyError):
    def __init__(self, name: object) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"User {self.name} not found."


class HyperparameterError(WikiVoteError, ValueError):
    pass


class FetchError(WikiVoteError):
    """A request to the wiki failed or returned something unparsable."""


__all__ = [
    "WikiVoteError",
    "FileIOError",
    "DecodeError",
    "DuplicateArticleError",
    "UnknownArticleError",
    "UnknownUserError",
    "HyperparameterError",
    "FetchError",
]
