"""Error taxonomy shared by the parsers and resolvers.

Every fatal condition is a ``FlydivError`` tagged with an ``ErrorKind`` so callers
can branch on the kind instead of matching message text. Positions that are not
covered by an alignment are *not* errors; they come back as gap/unavailable results.
"""

from __future__ import annotations

import enum


class ErrorKind(enum.Enum):
    FORMAT = "format"
    PARAMETER = "parameter"
    END_OF_INPUT = "end_of_input"


class FlydivError(Exception):
    """Base class for all flydiv failures."""

    kind: ErrorKind = ErrorKind.FORMAT

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class FormatError(FlydivError):
    """Malformed input: wrong field counts, bad coordinates, unknown chromosome."""

    kind = ErrorKind.FORMAT


class ParseError(FormatError):
    """A CDS FASTA header could not be parsed."""


class ParameterError(FlydivError):
    """Caller supplied inverted ranges or mismatched parallel inputs."""

    kind = ErrorKind.PARAMETER


class EndOfInputError(FlydivError):
    """Input ended before a complete record (or a requested chromosome) was read."""

    kind = ErrorKind.END_OF_INPUT
