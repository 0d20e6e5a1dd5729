"""Four-fold degenerate site extraction from a sorted CDS FASTA.

Records must be sorted by chromosome and start position (``flydiv sort-fasta``
produces such a file). Overlapping CDS are resolved pairwise before any sites are
called so that no genome position contributes sites to two different genes.
"""

from __future__ import annotations

import dataclasses
import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import pysam

from .errors import ParameterError, ParseError
from .models import CDSRecord, FourFoldSite
from .validation import DROSOPHILA_ARMS, strip_scaffold, to_ucsc

logger = logging.getLogger(__name__)

_LOC_RE = re.compile(r"^loc=(?P<chrom>[^:]+):(?P<span>.+?);?$")
_RANGE_RE = re.compile(r"^(\d+)\.\.(\d+)$")
_GENE_ID = slice(11, 18)  # parent=FBgn0031081,... -> 0031081

_COMPLEMENT = "complement("
_JOIN = "join("

_ALWAYS_FOURFOLD = frozenset("C")
_CONDITIONAL_SECOND = frozenset("GT")
_CONDITIONAL_FIRST = frozenset("CG")


def _parse_range(text: str, header: str) -> Tuple[int, int]:
    m = _RANGE_RE.match(text)
    if m is None:
        raise ParseError(f"Cannot parse position range '{text}' in header {header}")
    start, end = int(m.group(1)), int(m.group(2))
    if start >= end:
        raise ParseError(f"Start position is not before the end position in header {header}")
    return start, end


def _parse_location(field: str, header: str) -> Tuple[str, List[int]]:
    m = _LOC_RE.match(field)
    if m is None:
        raise ParseError(f"Cannot parse location field '{field}' in header {header}")

    chrom = strip_scaffold(m.group("chrom"))
    if chrom not in DROSOPHILA_ARMS:
        raise ParseError(f"Unknown chromosome {chrom} in header {header}")

    span = m.group("span")
    complemented = span.startswith(_COMPLEMENT) and span.endswith(")")
    if complemented:
        span = span[len(_COMPLEMENT) : -1]

    if span.startswith(_JOIN):
        if not span.endswith(")") or len(span) <= len(_JOIN) + 1:
            raise ParseError(f"Malformed join list '{span}' in header {header}")
        parts = span[len(_JOIN) : -1].split(",")
    elif span[:1].isdigit():
        parts = [span]
    else:
        raise ParseError(f"Unknown value in position list of field {field}")

    ranges = [_parse_range(p, header) for p in parts]

    positions: List[int] = []
    if complemented:
        for start, end in reversed(ranges):
            positions.extend(range(end, start - 1, -1))
    else:
        for start, end in ranges:
            positions.extend(range(start, end + 1))
    return to_ucsc(chrom), positions


def parse_cds_header(header: str) -> Tuple[str, str, Tuple[int, ...]]:
    """Extract (chromosome, gene id, per-nucleotide positions) from a CDS header.

    The header must carry a ``loc=`` field, e.g.
    ``loc=X:complement(join(100..150,200..260));``. Complemented records list
    positions from the last exon backwards, so they decrease.
    """
    chrom: Optional[str] = None
    positions: Optional[List[int]] = None
    gene_id = ""
    for field in header.split(" "):
        if field.startswith("loc="):
            chrom, positions = _parse_location(field, header)
        elif field.startswith("parent="):
            gene_id = field[_GENE_ID]
    if chrom is None or positions is None:
        raise ParseError(f"No loc= field in header {header}")
    return chrom, gene_id, tuple(positions)


def record_from_fasta(header: str, sequence: str) -> CDSRecord:
    chrom, gene_id, positions = parse_cds_header(header)
    return CDSRecord(chrom=chrom, gene_id=gene_id, positions=positions, sequence=sequence)


def iter_cds_records(fasta_path: str | Path) -> Iterator[CDSRecord]:
    """Read CDS records from a (optionally gzipped) FASTA file in file order."""
    with pysam.FastxFile(str(fasta_path)) as fx:
        for entry in fx:
            header = entry.name if not entry.comment else f"{entry.name} {entry.comment}"
            yield record_from_fasta(header, entry.sequence or "")


def truncate_overlap(record: CDSRecord, n_nucleotides: int, side: str) -> CDSRecord:
    """Return a copy of ``record`` with nucleotides removed from one genomic end.

    ``side`` is ``"left"`` (low coordinates) or ``"right"`` (high coordinates). For a
    forward record the right end is the 3' tail of the sequence; for a complemented
    record it is the 5' head. Removing a multiple of 3 keeps the reading frame.
    """
    if side not in ("left", "right"):
        raise ParameterError(f"side must be 'left' or 'right', got {side!r}")
    if n_nucleotides <= 0:
        return record
    if n_nucleotides >= len(record):
        raise ParameterError(
            f"Cannot remove {n_nucleotides} nucleotides from a record of length {len(record)}"
        )

    from_head = (side == "left") != record.is_complement
    if from_head:
        positions = record.positions[n_nucleotides:]
        sequence = record.sequence[n_nucleotides:]
    else:
        positions = record.positions[:-n_nucleotides]
        sequence = record.sequence[:-n_nucleotides]
    return dataclasses.replace(record, positions=positions, sequence=sequence)


def codon_overlap(previous: CDSRecord, current: CDSRecord) -> int:
    """Nucleotides of ``previous`` inside ``current``'s span, rounded up to whole codons."""
    lo, hi = current.span_start, current.span_end
    n = sum(1 for p in previous.positions if lo <= p <= hi)
    return n + (-n % 3)


def classify_sites(record: CDSRecord) -> List[FourFoldSite]:
    """Four-fold degenerate third codon positions of a record.

    Second position C: always four-fold. Second position G or T: four-fold when the
    first position is C or G. Second position A: never.
    """
    seq = record.sequence.upper()
    sites: List[FourFoldSite] = []
    for i in range(0, len(seq) - 2, 3):
        first, second = seq[i], seq[i + 1]
        if second in _ALWAYS_FOURFOLD or (
            second in _CONDITIONAL_SECOND and first in _CONDITIONAL_FIRST
        ):
            sites.append(FourFoldSite(chrom=record.chrom, gene_id=record.gene_id, position=record.positions[i + 2]))
    return sites


def _describe(record: CDSRecord) -> str:
    strand = "-" if record.is_complement else "+"
    return f"{record.gene_id} ({record.chrom}:{record.span_start}-{record.span_end}{strand})"


class CodingSequenceResolver:
    """Pairwise overlap resolution over chromosome-sorted CDS records.

    Feed records with ``consume`` (each call returns the sites of any record that
    became final) and call ``finish`` at the end of input. ``resolve`` wraps both.
    """

    def __init__(self) -> None:
        self.previous: Optional[CDSRecord] = None
        self.stats: Dict[str, int] = {
            "records": 0,
            "flushed": 0,
            "discarded": 0,
            "overlaps": 0,
            "sites": 0,
        }

    def _flush(self, record: CDSRecord) -> List[FourFoldSite]:
        sites = classify_sites(record)
        self.stats["flushed"] += 1
        self.stats["sites"] += len(sites)
        return sites

    def consume(self, current: CDSRecord) -> List[FourFoldSite]:
        self.stats["records"] += 1
        prev = self.previous

        if prev is None:
            self.previous = current
            return []

        if current.chrom != prev.chrom:
            logger.info("Switching from chromosome %s to %s", prev.chrom, current.chrom)
            self.previous = current
            return self._flush(prev)

        if current.span_start < prev.span_start:
            logger.warning(
                "CDS %s starts before the preceding %s; input does not look sorted",
                _describe(current),
                _describe(prev),
            )

        if current.span_start > prev.span_end:
            self.previous = current
            return self._flush(prev)

        overlap = codon_overlap(prev, current)
        self.stats["overlaps"] += 1
        logger.info(
            "CDS %s overlaps %s by %d nucleotides (codon-rounded)",
            _describe(current),
            _describe(prev),
            overlap,
        )

        if overlap == 0:
            # spans overlap but no coding nucleotide is shared, e.g. a gene inside an intron
            self.previous = current
            return self._flush(prev)

        prev_len, cur_len = len(prev), len(current)

        if overlap >= prev_len and overlap >= cur_len:
            logger.info("Both %s and %s removed", _describe(prev), _describe(current))
            self.stats["discarded"] += 2
            self.previous = None
            return []

        if overlap >= prev_len:
            logger.info("%s removed; %s kept after truncation", _describe(prev), _describe(current))
            self.stats["discarded"] += 1
            self.previous = truncate_overlap(current, overlap, "left")
            return []

        if overlap >= cur_len:
            self.stats["discarded"] += 1
            self.previous = None
            if current.span_end <= prev.span_end:
                logger.info("%s lies within %s and is removed", _describe(current), _describe(prev))
                return self._flush(prev)
            logger.info("%s kept after truncation; %s removed", _describe(prev), _describe(current))
            return self._flush(truncate_overlap(prev, overlap, "right"))

        logger.info("Both %s and %s truncated by %d", _describe(prev), _describe(current), overlap)
        sites = self._flush(truncate_overlap(prev, overlap, "right"))
        self.previous = truncate_overlap(current, overlap, "left")
        return sites

    def finish(self) -> List[FourFoldSite]:
        prev = self.previous
        self.previous = None
        if prev is None:
            return []
        return self._flush(prev)

    def resolve(self, records: Iterable[CDSRecord]) -> Iterator[FourFoldSite]:
        for record in records:
            yield from self.consume(record)
        yield from self.finish()
