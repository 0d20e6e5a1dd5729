"""Forward-only lookup of aligned nucleotides in pairwise .axt alignments.

An .axt block is a 9-field header line followed by the primary and the aligned
sequence. Blocks must be sorted by primary start within each chromosome, which is
how UCSC net.axt files are distributed. ``AlignmentCursor`` never rewinds: queries
for one chromosome must come in non-decreasing position order, and chromosomes
must be queried in file order.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

import numpy as np
from tqdm import tqdm

from .errors import EndOfInputError, FormatError, ParameterError
from .models import (
    GAP,
    GAP_STATES,
    UNAVAILABLE,
    AlignmentBlock,
    DivergedSite,
    OutgroupState,
    SiteStates,
    is_missing_base,
)
from .utils import open_textmaybe_gzip
from .validation import normalize_chromosome

logger = logging.getLogger(__name__)

_HEADER_FIELDS = 9


def _coordinate(value: str, what: str) -> int:
    try:
        pos = int(value)
    except ValueError:
        pos = 0
    if pos <= 0:
        raise FormatError(f"Wrong {what}: {value}")
    return pos


def _sequence_line(lines: Iterator[str], index: str, which: str) -> str:
    raw = next(lines, None)
    if raw is None:
        raise EndOfInputError(
            f"End of file reached before the {which} sequence of record #{index} was read"
        )
    return raw.strip()


def iter_axt_blocks(handle: Iterable[str]) -> Iterator[AlignmentBlock]:
    """Parse and validate .axt blocks one at a time.

    Raises
    ------
    FormatError
        Wrong header field count, unknown chromosome, bad coordinates, blocks out of
        order, or sequences of unequal length.
    EndOfInputError
        A header line is not followed by both sequence lines.
    """
    lines = iter(handle)
    prev_chrom: Optional[str] = None
    prev_start = 0

    for raw in lines:
        line = raw.strip()
        if not line or line.startswith("#"):
            continue

        fields = line.split()
        if len(fields) != _HEADER_FIELDS:
            raise FormatError(
                f"Wrong number of fields in .axt metadata ({len(fields)} instead of "
                f"{_HEADER_FIELDS}): {line}"
            )
        index, p_chrom, p_start, p_end, a_chrom, a_start, a_end, strand, score = fields

        primary_chrom = normalize_chromosome(p_chrom)
        primary_start = _coordinate(p_start, "primary sequence start")
        if primary_chrom == prev_chrom and primary_start <= prev_start:
            raise FormatError(
                f"Primary start of record #{index} ({primary_start}) is not greater "
                f"than that of the previous record ({prev_start})"
            )
        primary_end = _coordinate(p_end, "primary sequence end")
        if primary_end < primary_start:
            raise FormatError(
                f"End of primary sequence ({primary_end}) is before its start "
                f"({primary_start}) in record #{index}"
            )

        aligned_chrom = normalize_chromosome(a_chrom)
        aligned_start = _coordinate(a_start, "aligned sequence start")
        aligned_end = _coordinate(a_end, "aligned sequence end")

        primary_seq = _sequence_line(lines, index, "primary")
        aligned_seq = _sequence_line(lines, index, "aligned")
        if len(primary_seq) != len(aligned_seq):
            raise FormatError(f"The sequence strings for record #{index} are not equal length")

        prev_chrom, prev_start = primary_chrom, primary_start
        yield AlignmentBlock(
            index=index,
            primary_chrom=primary_chrom,
            primary_start=primary_start,
            primary_end=primary_end,
            aligned_chrom=aligned_chrom,
            aligned_start=aligned_start,
            aligned_end=aligned_end,
            strand=strand,
            score=score,
            primary_seq=primary_seq,
            aligned_seq=aligned_seq,
        )


class AlignmentCursor:
    """Resolve primary-genome positions to aligned nucleotides in one forward pass.

    The cursor holds the most recently read block and the last chromosome it has
    scanned to the end. Once a chromosome is marked as scanned, further queries for
    it answer "not covered" immediately without touching the file.

    Use as a context manager so the file handle is closed on every exit path::

        with AlignmentCursor("dm6.droSim1.net.axt") as axt:
            sites, length = axt.diverged_sites_in_range("chr2L", 5000, 5400)
    """

    def __init__(self, axt_path: str | Path) -> None:
        self.path = str(axt_path)
        self._fh = open_textmaybe_gzip(self.path, "rt")
        self._blocks = iter_axt_blocks(self._fh)
        self.current_block: Optional[AlignmentBlock] = None
        # alignment column of each primary base in the current block
        self._columns: np.ndarray = np.empty(0, dtype=np.intp)
        self.last_scanned_chrom: Optional[str] = None
        self.exhausted = False
        self.blocks_read = 0
        try:
            if not self._advance():
                raise FormatError(f"No alignment records found in {self.path}")
        except Exception:
            self.close()
            raise

    def __enter__(self) -> "AlignmentCursor":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        if not self._fh.closed:
            self._fh.close()

    def _advance(self) -> bool:
        block = next(self._blocks, None)
        if block is None:
            self.exhausted = True
            return False
        if self.current_block is not None and block.primary_chrom != self.current_block.primary_chrom:
            logger.debug("Alignment moved from %s to %s", self.current_block.primary_chrom, block.primary_chrom)
        self.current_block = block
        primary = np.frombuffer(block.primary_seq.encode("latin-1", errors="replace"), dtype=np.uint8)
        self._columns = np.flatnonzero(primary != ord(GAP))
        self.blocks_read += 1
        return True

    def _require_block(self) -> AlignmentBlock:
        if self.current_block is None:
            raise EndOfInputError(f"No alignment record has been read from {self.path}")
        return self.current_block

    def _mark_scanned(self, chrom: str) -> None:
        if self.last_scanned_chrom != chrom:
            logger.debug("Chromosome %s fully scanned in %s", chrom, self.path)
            self.last_scanned_chrom = chrom

    def block_summary(self) -> str:
        """Space-delimited summary of the current block.

        Fields: primary chromosome, same-chromosome flag (0/1), primary start,
        primary end, aligned start, aligned end.
        """
        b = self._require_block()
        return (
            f"{b.primary_chrom} {int(b.same_chrom)} {b.primary_start} {b.primary_end} "
            f"{b.aligned_start} {b.aligned_end}"
        )

    def _states_in_block(self, block: AlignmentBlock, position: int) -> SiteStates:
        offset = position - block.primary_start  # genomic offset with gaps removed
        if offset < len(self._columns):
            col = int(self._columns[offset])
            return SiteStates(
                primary=block.primary_seq[col],
                aligned=block.aligned_seq[col],
                same_chrom=block.same_chrom,
            )
        logger.warning(
            "Record #%s (%s:%d-%d) has fewer primary bases than its span; position %d treated as uncovered",
            block.index,
            block.primary_chrom,
            block.primary_start,
            block.primary_end,
            position,
        )
        return GAP_STATES

    def resolve_site(self, chrom: str, position: int) -> SiteStates:
        """Return the primary and aligned nucleotides at ``chrom:position``.

        Positions not covered by any block (including gaps between blocks and
        positions past the last block of a chromosome) return ``GAP_STATES``.

        Raises
        ------
        EndOfInputError
            The file ended before ``chrom`` appeared at all.
        """
        if chrom == self.last_scanned_chrom:
            return GAP_STATES

        matched = False
        while True:
            block = self._require_block()
            if block.primary_chrom != chrom:
                if matched:
                    # went past the chromosome without reaching the position
                    self._mark_scanned(chrom)
                    return GAP_STATES
                if not self._advance():
                    raise EndOfInputError(
                        f"Reached the end of {self.path} before finding a record for "
                        f"position {position} on chromosome {chrom}"
                    )
                continue

            matched = True
            if block.primary_end >= position:
                if position < block.primary_start:
                    return GAP_STATES
                return self._states_in_block(block, position)
            if not self._advance():
                self._mark_scanned(chrom)
                return GAP_STATES

    def diverged_sites_in_range(
        self, chrom: str, start: int, end: int
    ) -> Tuple[List[DivergedSite], int]:
        """Divergent sites in ``[start, end]`` and the number of informative sites.

        Gaps and unknown nucleotides are skipped and do not count toward the length.
        The range must lie on a single chromosome.
        """
        if start >= end:
            raise ParameterError(
                f"Start position ({start}) must come before the end position ({end})"
            )
        sites: List[DivergedSite] = []
        length = 0
        for pos in range(start, end + 1):
            # the chromosome has been explored to the end; nothing more to find
            if chrom == self.last_scanned_chrom:
                break
            states = self.resolve_site(chrom, pos)
            if not states.is_informative:
                continue
            length += 1
            if states.is_diverged:
                sites.append(self._diverged(chrom, pos, states))
        return sites, length

    def diverged_sites_at_positions(
        self,
        chroms: Sequence[str],
        positions: Sequence[int],
        *,
        progress: bool = False,
    ) -> Tuple[List[DivergedSite], Dict[str, int]]:
        """Divergent sites among individual positions, with per-chromosome lengths.

        ``chroms`` and ``positions`` are parallel. Entries for one chromosome must be
        contiguous and in the same chromosome order as the .axt file.
        """
        if len(chroms) != len(positions):
            raise ParameterError(
                f"The list of chromosome names (size = {len(chroms)}) is not the same size "
                f"as the list of positions (size = {len(positions)})"
            )
        sites: List[DivergedSite] = []
        lengths: Dict[str, int] = {}

        pairs: Iterable[Tuple[str, int]] = zip(chroms, positions)
        if progress:
            pairs = tqdm(pairs, total=len(positions), unit="site", desc="Resolving sites")

        for chrom, pos in pairs:
            # skip, not stop: later entries may be on other chromosomes
            if chrom == self.last_scanned_chrom:
                continue
            states = self.resolve_site(chrom, pos)
            if not states.is_informative:
                continue
            lengths[chrom] = lengths.get(chrom, 0) + 1
            if states.is_diverged:
                sites.append(self._diverged(chrom, pos, states))
        return sites, lengths

    def outgroup_state(self, chrom: str, position: int) -> OutgroupState:
        """Aligned (outgroup) nucleotide at a primary position, or an unavailable marker."""
        if chrom == self.last_scanned_chrom:
            return UNAVAILABLE
        states = self.resolve_site(chrom, position)
        if is_missing_base(states.aligned):
            return OutgroupState(base=None, same_chrom=states.same_chrom, good_quality=False)
        return OutgroupState(
            base=states.aligned,
            same_chrom=states.same_chrom,
            good_quality=states.aligned.isupper(),
        )

    @staticmethod
    def _diverged(chrom: str, position: int, states: SiteStates) -> DivergedSite:
        return DivergedSite(
            chrom=chrom,
            position=position,
            primary=states.primary,
            aligned=states.aligned,
            same_chrom=states.same_chrom,
            good_quality=states.good_quality,
        )
