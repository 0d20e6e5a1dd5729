from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from .errors import FormatError
from .utils import iter_data_lines, open_textmaybe_gzip
from .validation import to_ucsc

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RangeQuery:
    chrom: str
    start: int
    end: int


@dataclass
class PositionQueries:
    """Parallel chromosome and position lists, in file order."""

    chroms: List[str] = field(default_factory=list)
    positions: List[int] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.positions)


Queries = Union[PositionQueries, List[RangeQuery]]


def _number(token: str, line: str) -> int:
    if not token[:1].isdigit():
        raise FormatError(f"{token} is not a numerical value in query line: {line}")
    try:
        return int(token)
    except ValueError:
        raise FormatError(f"{token} is not a numerical value in query line: {line}") from None


def read_queries(path: str | Path) -> Queries:
    """Read a positions file (``chr pos``) or a ranges file (``chr start end ...``).

    The first data line decides the mode; every later line must match it. Blank
    lines and ``#`` comments are ignored.
    """
    positions: Optional[PositionQueries] = None
    ranges: Optional[List[RangeQuery]] = None

    with open_textmaybe_gzip(path, "rt") as fh:
        for lineno, line in iter_data_lines(fh):
            fields = line.split()
            if positions is None and ranges is None:
                if len(fields) < 2:
                    raise FormatError(
                        "Query file should have at least two white-space separated fields"
                    )
                if len(fields) == 2:
                    positions = PositionQueries()
                    coords = fields[1:2]
                else:
                    ranges = []
                    coords = fields[1:3]
                if not all(c[:1].isdigit() for c in coords):
                    # first line with non-numeric coordinates is a column header
                    logger.debug("Skipping query header line: %s", line)
                    continue

            if positions is not None:
                if len(fields) != 2:
                    raise FormatError(
                        f"Line {lineno} ({line}) does not have two fields in a positions query file"
                    )
                positions.chroms.append(to_ucsc(fields[0]))
                positions.positions.append(_number(fields[1], line))
            elif ranges is not None:
                if len(fields) < 3:
                    raise FormatError(
                        f"Line {lineno} ({line}) has fewer than three fields in a ranges query file"
                    )
                ranges.append(
                    RangeQuery(
                        chrom=to_ucsc(fields[0]),
                        start=_number(fields[1], line),
                        end=_number(fields[2], line),
                    )
                )

    if positions is not None:
        logger.info("Read %d query positions from %s", len(positions), path)
        return positions
    if ranges is not None:
        logger.info("Read %d query ranges from %s", len(ranges), path)
        return ranges
    raise FormatError(f"Query file {path} has no uncommented non-empty lines")
