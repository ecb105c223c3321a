from __future__ import annotations


class AdMixError(Exception):
    """Base class for failures surfaced by the version store and mixer."""


class NotFoundError(AdMixError, KeyError):
    def __str__(self) -> str:
        # KeyError quotes its argument; keep the plain message
        return str(self.args[0]) if self.args else "not found"


class InvalidStateError(AdMixError, ValueError):
    pass


class MalformedInputError(AdMixError, ValueError):
    pass


class IncompleteContentError(AdMixError, ValueError):
    def __init__(self, missing_count: int, total: int):
        self.missing_count = missing_count
        self.total = total
        super().__init__(
            f"{missing_count} of {total} track(s) missing audio; generate audio for all tracks before activation"
        )


class StoreUnavailableError(AdMixError, RuntimeError):
    pass
