"""Run drivers: read queries, stream the inputs once, write a TSV table, return a summary."""

from __future__ import annotations

import logging
import time
from pathlib import Path
from typing import Dict, Iterable, List, TextIO

import numpy as np
from tqdm import tqdm

from .axt import AlignmentCursor
from .cds import CodingSequenceResolver, iter_cds_records
from .models import AncestralState, DivergedSite, PolymorphicSite
from .queries import PositionQueries, RangeQuery, read_queries
from .vcf import VariantSiteAnnotator

logger = logging.getLogger(__name__)

DIV_HEADER = ["chr", "position", "prNuc", "alNuc", "sameCHR", "goodQual"]
DIV_RANGE_HEADER = ["peakID", "realLen"] + DIV_HEADER
POLY_HEADER = [
    "CHR",
    "POS",
    "REF",
    "ALT",
    "ANC",
    "AC",
    "MLAC",
    "AF",
    "MLAF",
    "NMISS",
    "SAME_CHR",
    "OUTQUAL",
    "SITEQUAL",
]
POLY_RANGE_HEADER = ["PEAK_ID"] + POLY_HEADER
FF_HEADER = ["chr", "FBgn", "pos"]

DAF_BINS = 20


def _write_header(fh: TextIO, columns: List[str]) -> None:
    fh.write("\t".join(columns) + "\n")


def _open_out(path: str | Path) -> TextIO:
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "wt", encoding="utf-8")


def _tally(sites: Iterable[DivergedSite], into: Dict[str, int]) -> None:
    for s in sites:
        into[s.chrom] = into.get(s.chrom, 0) + 1


def _maybe_progress(ranges: List[RangeQuery], progress: bool, desc: str) -> Iterable[RangeQuery]:
    if progress:
        return tqdm(ranges, unit="range", desc=desc)
    return ranges


def run_divsites(
    *,
    axt_path: str | Path,
    query_path: str | Path,
    out_path: str | Path,
    progress: bool = False,
) -> Dict[str, object]:
    """Write diverged sites for the queried positions or ranges."""
    t0 = time.time()
    queries = read_queries(query_path)

    covered: Dict[str, int] = {}
    diverged: Dict[str, int] = {}

    with AlignmentCursor(axt_path) as axt, _open_out(out_path) as out:
        if isinstance(queries, PositionQueries):
            mode = "positions"
            sites, covered = axt.diverged_sites_at_positions(
                queries.chroms, queries.positions, progress=progress
            )
            # total number of informative sites per chromosome goes in comment lines first
            for chrom, length in covered.items():
                out.write(f"#\t{chrom}\t{length}\n")
            _write_header(out, DIV_HEADER)
            for s in sites:
                out.write(s.to_row() + "\n")
            _tally(sites, diverged)
            n_queries = len(queries)
        else:
            mode = "ranges"
            _write_header(out, DIV_RANGE_HEADER)
            for peak, q in enumerate(_maybe_progress(queries, progress, "Scanning ranges"), start=1):
                sites, length = axt.diverged_sites_in_range(q.chrom, q.start, q.end)
                for s in sites:
                    out.write(f"P{peak}\t{length}\t{s.to_row()}\n")
                covered[q.chrom] = covered.get(q.chrom, 0) + length
                _tally(sites, diverged)
            n_queries = len(queries)
        blocks_read = axt.blocks_read

    summary: Dict[str, object] = {
        "command": "divsites",
        "mode": mode,
        "axt_path": str(axt_path),
        "query_path": str(query_path),
        "out_path": str(out_path),
        "queries": n_queries,
        "blocks_read": blocks_read,
        "covered_length": covered,
        "diverged_sites": diverged,
        "diverged_total": int(sum(diverged.values())),
        "runtime_seconds": float(time.time() - t0),
    }
    logger.info(
        "%d diverged sites over %d covered sites",
        summary["diverged_total"],
        sum(covered.values()),
    )
    return summary


def daf_histogram(sites: Iterable[PolymorphicSite], bins: int = DAF_BINS) -> Dict[str, List[float]]:
    """Derived allele frequency histogram over sites with a known ancestral state."""
    dafs = [s.derived_af for s in sites if s.ancestral is not AncestralState.UNKNOWN]
    edges = np.linspace(0.0, 1.0, bins + 1)
    counts, _ = np.histogram(np.asarray(dafs, dtype=float), bins=edges)
    return {"bin_edges": edges.tolist(), "counts": counts.tolist()}


def run_polysites(
    *,
    axt_path: str | Path,
    vcf_path: str | Path,
    query_path: str | Path,
    out_path: str | Path,
    progress: bool = False,
) -> Dict[str, object]:
    """Write annotated polymorphic sites for the queried positions or ranges."""
    t0 = time.time()
    queries = read_queries(query_path)
    all_sites: List[PolymorphicSite] = []

    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf, _open_out(
        out_path
    ) as out:
        if isinstance(queries, PositionQueries):
            mode = "positions"
            _write_header(out, POLY_HEADER)
            sites = vcf.polymorphic_sites_at_positions(queries.chroms, queries.positions)
            for s in sites:
                out.write(s.to_row() + "\n")
            all_sites.extend(sites)
        else:
            mode = "ranges"
            _write_header(out, POLY_RANGE_HEADER)
            for peak, q in enumerate(_maybe_progress(queries, progress, "Scanning ranges"), start=1):
                sites = vcf.polymorphic_sites_in_range(q.chrom, q.start, q.end)
                for s in sites:
                    out.write(f"P{peak}\t{s.to_row()}\n")
                all_sites.extend(sites)
        stats = dict(vcf.stats)

    summary: Dict[str, object] = {
        "command": "polysites",
        "mode": mode,
        "axt_path": str(axt_path),
        "vcf_path": str(vcf_path),
        "query_path": str(query_path),
        "out_path": str(out_path),
        "queries": len(queries),
        "counts": stats,
        "daf_hist": daf_histogram(all_sites),
        "runtime_seconds": float(time.time() - t0),
    }
    logger.info(
        "%d polymorphic sites (%d reference-ancestral, %d alternate-ancestral, %d unknown)",
        stats["sites"],
        stats["ancestral_reference"],
        stats["ancestral_alternate"],
        stats["ancestral_unknown"],
    )
    return summary


def run_ffsites(*, fasta_path: str | Path, out_path: str | Path) -> Dict[str, object]:
    """Write four-fold degenerate sites of a sorted CDS FASTA."""
    t0 = time.time()
    resolver = CodingSequenceResolver()
    per_chrom: Dict[str, int] = {}

    with _open_out(out_path) as out:
        _write_header(out, FF_HEADER)
        for site in resolver.resolve(iter_cds_records(fasta_path)):
            out.write(site.to_row() + "\n")
            per_chrom[site.chrom] = per_chrom.get(site.chrom, 0) + 1

    summary: Dict[str, object] = {
        "command": "ffsites",
        "fasta_path": str(fasta_path),
        "out_path": str(out_path),
        "counts": dict(resolver.stats),
        "sites_per_chrom": per_chrom,
        "runtime_seconds": float(time.time() - t0),
    }
    logger.info(
        "%d four-fold sites from %d CDS records (%d overlaps resolved)",
        resolver.stats["sites"],
        resolver.stats["records"],
        resolver.stats["overlaps"],
    )
    return summary
