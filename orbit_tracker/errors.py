"""
Error Taxonomy

Every failure in the tracking core is scoped to a single element set,
object or fetch. None of these exceptions is meant to stop a session; the
tracking layer catches them, logs them and turns them into status
annotations.
"""

from enum import Enum
from typing import Optional


class TrackerError(Exception):
    """Base class for all tracking core errors."""


class ParseErrorKind(Enum):
    CHECKSUM = "malformed checksum"
    MISSING_FIELD = "missing field"
    BAD_NUMBER = "unparseable numeric token"
    FORMAT = "malformed record"


class ParseError(TrackerError, ValueError):
    """
    Malformed element set text.

    Attributes:
        kind: What went wrong
        field: Name of the offending field, if known
        line: Offending line number (1 or 2 for TLE) or record index
    """

    def __init__(self, kind: ParseErrorKind, message: str,
                 field: Optional[str] = None, line: Optional[int] = None):
        self.kind = kind
        self.field = field
        self.line = line
        location = []
        if line is not None:
            location.append(f"line {line}")
        if field is not None:
            location.append(f"field '{field}'")
        where = f" ({', '.join(location)})" if location else ""
        super().__init__(f"{kind.value}{where}: {message}")


class InitializationError(TrackerError, ValueError):
    """Element set yields degenerate SGP4 coefficients."""

    def __init__(self, message: str, norad_id: Optional[int] = None):
        self.norad_id = norad_id
        super().__init__(message)


class PropagationErrorKind(Enum):
    DECAYED = "decayed"
    OUT_OF_VALIDITY_RANGE = "out of validity range"


class PropagationError(TrackerError, RuntimeError):
    """
    Propagation result cannot be trusted.

    Attributes:
        kind: DECAYED or OUT_OF_VALIDITY_RANGE
        sgp4_error: Raw sgp4 library error code (0 if the library succeeded)
        minutes_since_epoch: Propagation offset that failed
        degraded: State vector computed anyway, when one exists
    """

    def __init__(self, kind: PropagationErrorKind, message: str,
                 sgp4_error: int = 0, minutes_since_epoch: float = 0.0,
                 degraded=None):
        self.kind = kind
        self.sgp4_error = sgp4_error
        self.minutes_since_epoch = minutes_since_epoch
        self.degraded = degraded
        super().__init__(f"{kind.value}: {message}")

    @property
    def decayed(self) -> bool:
        return self.kind is PropagationErrorKind.DECAYED


class FetchError(TrackerError, IOError):
    """Network failure while fetching element sets."""

    def __init__(self, message: str, source: Optional[str] = None,
                 status_code: Optional[int] = None):
        self.source = source
        self.status_code = status_code
        super().__init__(message)


class CacheError(TrackerError, IOError):
    """Element cache read or write failure."""
