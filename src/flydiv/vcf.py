"""Polymorphic sites with outgroup-based ancestral states.

The VCF is read once, front to back, with ``pysam.VariantFile``; queries must be
sorted the same way as the VCF and the .axt file. Only biallelic SNPs are reported.
Allele counts come from the GATK INFO fields ``AC``, ``AF``, ``AN``, ``MLEAC`` and
``MLEAF``.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

import pysam

from .axt import AlignmentCursor
from .errors import FormatError, ParameterError
from .models import AncestralState, PolymorphicSite, VariantRecord
from .validation import to_ucsc

logger = logging.getLogger(__name__)


def _info_value(info: Any, key: str, cast: Callable[[Any], Any], default: Any) -> Any:
    """First value of an INFO field (Number=A fields come back as tuples)."""
    if key not in info:
        return default
    value = info[key]
    if isinstance(value, (list, tuple)):
        value = value[0] if len(value) > 0 else None
    if value is None:
        return default
    return cast(value)


def _count_missing(rec: pysam.VariantRecord) -> int:
    n = 0
    for sample in rec.samples.values():
        gt = sample.get("GT")
        if gt is not None and len(gt) > 0 and all(a is None for a in gt):
            n += 1
    return n


def is_snp(rec: pysam.VariantRecord) -> bool:
    alts = rec.alts or ()
    return len(rec.ref) == 1 and len(alts) == 1 and len(alts[0]) == 1


def variant_from_record(rec: pysam.VariantRecord) -> VariantRecord:
    info = rec.info
    return VariantRecord(
        chrom=to_ucsc(str(rec.chrom)),
        position=int(rec.pos),
        ref=rec.ref,
        alt=rec.alts[0],
        quality=float(rec.qual) if rec.qual is not None else 0.0,
        ac=_info_value(info, "AC", int, 0),
        af=_info_value(info, "AF", float, 0.0),
        mleac=_info_value(info, "MLEAC", int, 0),
        mleaf=_info_value(info, "MLEAF", float, 0.0),
        called=_info_value(info, "AN", int, 0),
        n_missing=_count_missing(rec),
    )


class VariantSiteAnnotator:
    """Attach ancestral states from an outgroup alignment to VCF SNPs.

    Parameters
    ----------
    vcf_path:
        VCF (plain or bgzipped); no index is needed.
    cursor:
        Alignment of the primary genome against the outgroup. The annotator does
        not own it; close it separately.
    """

    def __init__(self, vcf_path: str | Path, cursor: AlignmentCursor) -> None:
        self.path = str(vcf_path)
        self.cursor = cursor
        self.last_scanned_chrom: Optional[str] = None
        self.exhausted = False
        self.stats: Dict[str, int] = {
            "records_seen": 0,
            "records_non_snp": 0,
            "sites": 0,
            "ancestral_reference": 0,
            "ancestral_alternate": 0,
            "ancestral_unknown": 0,
        }
        self._vcf = pysam.VariantFile(self.path)
        try:
            # contig order from the ##contig header lines
            self._contig_rank: Dict[str, int] = {
                to_ucsc(str(name)): i for i, name in enumerate(self._vcf.header.contigs)
            }
            if not self._contig_rank:
                logger.warning(
                    "%s declares no ##contig lines; a query on a chromosome without "
                    "records will read through the rest of the file",
                    self.path,
                )
            self._records = iter(self._vcf)
            self._pending: Optional[pysam.VariantRecord] = None
            self._advance()
            if self._pending is None:
                raise FormatError(f"No non-empty non-comment lines in file {self.path}")
        except Exception:
            self.close()
            raise

    def __enter__(self) -> "VariantSiteAnnotator":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._vcf.close()

    def _advance(self) -> None:
        self._pending = next(self._records, None)
        if self._pending is None:
            self.exhausted = True
        else:
            self.stats["records_seen"] += 1

    def _scan(self, chrom: str, start: int, end: int) -> Iterator[pysam.VariantRecord]:
        """Yield records on ``chrom`` within ``[start, end]``, never rewinding.

        A record past ``end`` stays pending for the next query. Seeing another
        chromosome after ``chrom`` marks ``chrom`` as fully scanned. So does a
        chromosome that has no records: it is either absent from the header or
        the pending record already sits on a later header contig.
        """
        if self._contig_rank:
            target = self._contig_rank.get(chrom)
            if target is None:
                logger.warning("Chromosome %s is not declared in %s; no sites reported", chrom, self.path)
                self.last_scanned_chrom = chrom
                return
            if self._pending is not None:
                pending = self._contig_rank.get(to_ucsc(str(self._pending.chrom)))
                if pending is not None and pending > target:
                    logger.debug("No VCF records left on %s", chrom)
                    self.last_scanned_chrom = chrom
                    return

        found = False
        while self._pending is not None:
            rec = self._pending
            if to_ucsc(str(rec.chrom)) == chrom:
                found = True
                if rec.pos > end:
                    return
                if rec.pos >= start:
                    yield rec
            elif found:
                logger.debug("VCF chromosome %s fully scanned", chrom)
                self.last_scanned_chrom = chrom
                return
            self._advance()
        if found:
            self.last_scanned_chrom = chrom

    def _annotate(self, rec: pysam.VariantRecord) -> Optional[PolymorphicSite]:
        if not is_snp(rec):
            self.stats["records_non_snp"] += 1
            return None

        variant = variant_from_record(rec)
        outgroup = self.cursor.outgroup_state(variant.chrom, variant.position)
        if outgroup.base is None:
            site = PolymorphicSite(
                variant=variant,
                ancestral=AncestralState.UNKNOWN,
                outgroup_quality=False,
                outgroup_same_chrom=False,
            )
        else:
            if outgroup.base.upper() == variant.ref.upper():
                ancestral = AncestralState.REFERENCE
            else:
                ancestral = AncestralState.ALTERNATE
            site = PolymorphicSite(
                variant=variant,
                ancestral=ancestral,
                outgroup_quality=outgroup.good_quality,
                outgroup_same_chrom=outgroup.same_chrom,
            )

        self.stats["sites"] += 1
        if site.ancestral is AncestralState.REFERENCE:
            self.stats["ancestral_reference"] += 1
        elif site.ancestral is AncestralState.ALTERNATE:
            self.stats["ancestral_alternate"] += 1
        else:
            self.stats["ancestral_unknown"] += 1
        return site

    def polymorphic_sites_in_range(self, chrom: str, start: int, end: int) -> List[PolymorphicSite]:
        """Annotated SNPs in ``[start, end]`` on one chromosome."""
        if start >= end:
            raise ParameterError(
                f"Start position ({start}) must come before the end position ({end})"
            )
        if chrom == self.last_scanned_chrom:
            return []
        sites: List[PolymorphicSite] = []
        for rec in self._scan(chrom, start, end):
            site = self._annotate(rec)
            if site is not None:
                sites.append(site)
        return sites

    def polymorphic_sites_at_positions(
        self, chroms: Sequence[str], positions: Sequence[int]
    ) -> List[PolymorphicSite]:
        """Annotated SNPs at individual positions (parallel, file-ordered lists)."""
        if len(chroms) != len(positions):
            raise ParameterError(
                f"The list of chromosome names (size = {len(chroms)}) is not the same size "
                f"as the list of positions (size = {len(positions)})"
            )
        sites: List[PolymorphicSite] = []
        for chrom, pos in zip(chroms, positions):
            if chrom == self.last_scanned_chrom:
                continue
            for rec in self._scan(chrom, pos, pos):
                site = self._annotate(rec)
                if site is not None:
                    sites.append(site)
        return sites
