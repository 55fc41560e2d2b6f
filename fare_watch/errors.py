"""Exceptions raised by fare-watch."""


class FareWatchError(RuntimeError):
    """Base error for fare-watch."""


class SearchError(FareWatchError):
    """A fare search could not be completed (browser, page or transport failure)."""


class SearchUsageError(SearchError):
    """A fare search was invoked with missing or invalid arguments."""
