from __future__ import annotations

import logging
from typing import Optional

from .errors import FormatError

logger = logging.getLogger(__name__)


_UCSC_PREFIX = "chr"
_SCAFFOLD_PREFIX = "Scf_"

# Drosophila chromosome arms, in the order a lexicographically sorted file visits them.
DROSOPHILA_ARMS = ("2L", "2R", "3L", "3R", "4", "X")


def normalize_chromosome(name: str) -> str:
    """Return the ``chr``-prefixed form of an .axt chromosome field.

    Accepts bare Drosophila arm symbols or any name already carrying ``chr``.
    Raises FormatError for anything else.
    """
    if name.startswith(_UCSC_PREFIX):
        return name
    if name in DROSOPHILA_ARMS:
        return f"{_UCSC_PREFIX}{name}"
    raise FormatError(f"Wrong chromosome field: {name}")


def strip_scaffold(name: str) -> str:
    """Remove the ``Scf_`` prefix used in D. simulans annotations."""
    if name.startswith(_SCAFFOLD_PREFIX):
        return name[len(_SCAFFOLD_PREFIX) :]
    return name


def arm_name(name: str) -> Optional[str]:
    """Map a contig name to a bare Drosophila arm symbol, or None if it is not one."""
    core = strip_scaffold(name)
    if core.startswith(_UCSC_PREFIX):
        core = core[len(_UCSC_PREFIX) :]
    return core if core in DROSOPHILA_ARMS else None


def to_ucsc(contig: str) -> str:
    """Prefix short (<= 2 character) chromosome tokens with ``chr``."""
    if len(contig) <= 2 and not contig.startswith(_UCSC_PREFIX):
        return f"{_UCSC_PREFIX}{contig}"
    return contig

