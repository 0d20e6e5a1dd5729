from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional, Tuple

from .errors import ParameterError

GAP = "-"
_MISSING_BASES = frozenset({"-", "N", "n"})


def is_missing_base(base: str) -> bool:
    """True for gaps and unknown nucleotides."""
    return base in _MISSING_BASES


@dataclass(frozen=True)
class AlignmentBlock:
    """One record of a pairwise .axt alignment.

    Coordinates are 1-based inclusive, as in the .axt header line.

    Attributes
    ----------
    index:
        Alignment number from the header (first field).
    primary_chrom, aligned_chrom:
        Normalized (``chr``-prefixed) chromosome names.
    primary_seq, aligned_seq:
        Equal-length aligned sequences; ``-`` marks a gap.
    """

    index: str
    primary_chrom: str
    primary_start: int
    primary_end: int
    aligned_chrom: str
    aligned_start: int
    aligned_end: int
    strand: str
    score: str
    primary_seq: str
    aligned_seq: str

    @property
    def same_chrom(self) -> bool:
        return self.aligned_chrom == self.primary_chrom


@dataclass(frozen=True)
class SiteStates:
    """Primary and aligned nucleotides at one primary-genome position."""

    primary: str
    aligned: str
    same_chrom: bool

    @property
    def is_informative(self) -> bool:
        return self.primary not in _MISSING_BASES and self.aligned not in _MISSING_BASES

    @property
    def is_diverged(self) -> bool:
        return self.primary.upper() != self.aligned.upper()

    @property
    def good_quality(self) -> bool:
        return self.primary.isupper() and self.aligned.isupper()


GAP_STATES = SiteStates(primary=GAP, aligned=GAP, same_chrom=False)


@dataclass(frozen=True)
class DivergedSite:
    chrom: str
    position: int
    primary: str
    aligned: str
    same_chrom: bool
    good_quality: bool

    def to_row(self) -> str:
        return (
            f"{self.chrom}\t{self.position}\t{self.primary}\t{self.aligned}\t"
            f"{int(self.same_chrom)}\t{int(self.good_quality)}"
        )


@dataclass(frozen=True)
class OutgroupState:
    """Outgroup nucleotide paired with a primary position.

    ``base`` is None when the site is unavailable (gap, unknown nucleotide, or a
    chromosome the cursor has already scanned past).
    """

    base: Optional[str]
    same_chrom: bool
    good_quality: bool

    @property
    def available(self) -> bool:
        return self.base is not None


UNAVAILABLE = OutgroupState(base=None, same_chrom=False, good_quality=False)


@dataclass(frozen=True)
class CDSRecord:
    """A coding sequence with the genome coordinate of every nucleotide.

    ``positions`` increase for forward-strand records and decrease for
    complemented ones; ``sequence`` is always in coding (5' to 3') orientation.
    """

    chrom: str
    gene_id: str
    positions: Tuple[int, ...]
    sequence: str

    def __post_init__(self) -> None:
        if len(self.sequence) != len(self.positions):
            raise ParameterError(
                f"Sequence length ({len(self.sequence)}) does not match the number of "
                f"positions ({len(self.positions)}) for gene {self.gene_id}"
            )

    def __len__(self) -> int:
        return len(self.sequence)

    @property
    def is_complement(self) -> bool:
        return len(self.positions) > 1 and self.positions[0] > self.positions[-1]

    @property
    def span_start(self) -> int:
        return min(self.positions[0], self.positions[-1])

    @property
    def span_end(self) -> int:
        return max(self.positions[0], self.positions[-1])


@dataclass(frozen=True)
class FourFoldSite:
    chrom: str
    gene_id: str
    position: int

    def to_row(self) -> str:
        return f"{self.chrom}\t{self.gene_id}\t{self.position}"


class AncestralState(enum.Enum):
    REFERENCE = "r"
    ALTERNATE = "a"
    UNKNOWN = "u"


@dataclass(frozen=True)
class VariantRecord:
    """A biallelic SNP from the VCF with its INFO allele counts.

    ``ac``/``af``/``mleac``/``mleaf`` are the raw INFO values for the ALT allele;
    ``called`` is ``AN``.
    """

    chrom: str
    position: int
    ref: str
    alt: str
    quality: float
    ac: int
    af: float
    mleac: int
    mleaf: float
    called: int
    n_missing: int


@dataclass(frozen=True)
class PolymorphicSite:
    variant: VariantRecord
    ancestral: AncestralState
    outgroup_quality: bool
    outgroup_same_chrom: bool

    @property
    def _flip(self) -> bool:
        return self.ancestral is AncestralState.ALTERNATE

    @property
    def derived_ac(self) -> int:
        v = self.variant
        return v.called - v.ac if self._flip else v.ac

    @property
    def derived_mleac(self) -> int:
        v = self.variant
        return v.called - v.mleac if self._flip else v.mleac

    @property
    def derived_af(self) -> float:
        v = self.variant
        return 1.0 - v.af if self._flip else v.af

    @property
    def derived_mleaf(self) -> float:
        v = self.variant
        return 1.0 - v.mleaf if self._flip else v.mleaf

    def to_row(self) -> str:
        v = self.variant
        return (
            f"{v.chrom}\t{v.position}\t{v.ref}\t{v.alt}\t{self.ancestral.value}\t"
            f"{self.derived_ac}\t{self.derived_mleac}\t"
            f"{self.derived_af:g}\t{self.derived_mleaf:g}\t"
            f"{v.n_missing}\t{int(self.outgroup_same_chrom)}\t{int(self.outgroup_quality)}\t"
            f"{v.quality:g}"
        )
