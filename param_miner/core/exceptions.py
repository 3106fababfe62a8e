"""
Exception hierarchy for Param Miner.

Only ``TransportError``, ``BaselineUnavailable`` and ``WordlistError`` are
raised across module boundaries. ``ExhaustedRetries`` and ``KillThreshold``
describe degraded runs and are recorded on the method report instead.
"""

from typing import Optional, Sequence


class ParamMinerError(Exception):
    """Base class for all Param Miner errors."""


class TransportError(ParamMinerError):
    """A request could not be completed (connection, timeout, malformed response)."""

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class BaselineUnavailable(ParamMinerError):
    """The control request failed after every retry; the method run is aborted."""

    def __init__(self, method: str, attempts: int, cause: Optional[BaseException] = None):
        super().__init__(
            f"baseline request for {method} failed after {attempts} attempt(s): {cause}"
        )
        self.method = method
        self.attempts = attempts
        self.cause = cause


class ExhaustedRetries(ParamMinerError):
    """A candidate group kept failing and was dropped untested."""

    def __init__(self, method: str, names: Sequence[str], attempts: int,
                 cause: Optional[BaseException] = None):
        super().__init__(
            f"{method}: gave up on {', '.join(names)} after {attempts} attempt(s)"
        )
        self.method = method
        self.names = tuple(names)
        self.attempts = attempts
        self.cause = cause


class KillThreshold(ParamMinerError):
    """Too many consecutive transport failures; the run stopped early."""

    def __init__(self, method: str, failures: int):
        super().__init__(
            f"{method}: {failures} consecutive transport failures, stopping run"
        )
        self.method = method
        self.failures = failures


class WordlistError(ParamMinerError):
    """A wordlist source could not be read."""
