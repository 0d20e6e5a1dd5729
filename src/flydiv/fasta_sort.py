from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Optional, Tuple

import pysam

from .validation import arm_name

logger = logging.getLogger(__name__)

_LOC_START_RE = re.compile(r"loc=(?P<chrom>[^:]+):\D*(?P<start>\d+)")


def _sort_key(header: str) -> Optional[Tuple[str, int]]:
    m = _LOC_START_RE.search(header)
    if m is None:
        return None
    arm = arm_name(m.group("chrom"))
    if arm is None:
        return None
    return arm, int(m.group("start"))


def sort_cds_fasta(fasta_in: str | Path, fasta_out: str | Path) -> Dict[str, int]:
    """Sort CDS records by chromosome arm and start position.

    Records on contigs other than the Drosophila arms are dropped. When two records
    share a start position, the one with the longer sequence is kept. Sequences are
    written on a single line each.
    """
    kept: Dict[Tuple[str, int], Tuple[str, str]] = {}
    stats = {"records_total": 0, "records_other_contig": 0, "records_same_start": 0, "records_written": 0}

    with pysam.FastxFile(str(fasta_in)) as fx:
        for entry in fx:
            stats["records_total"] += 1
            header = entry.name if not entry.comment else f"{entry.name} {entry.comment}"
            seq = entry.sequence or ""
            key = _sort_key(header)
            if key is None:
                stats["records_other_contig"] += 1
                continue
            if key in kept:
                stats["records_same_start"] += 1
                if len(seq) <= len(kept[key][1]):
                    continue
            kept[key] = (header, seq)

    out_path = Path(fasta_out)
    out_path.parent.mkdir(parents=True, exist_ok=True)
    with open(out_path, "wt", encoding="utf-8") as out:
        for key in sorted(kept):
            header, seq = kept[key]
            out.write(f">{header}\n{seq}\n")
    stats["records_written"] = len(kept)

    logger.info(
        "Sorted %d of %d CDS records (%d on other contigs, %d sharing a start)",
        stats["records_written"],
        stats["records_total"],
        stats["records_other_contig"],
        stats["records_same_start"],
    )
    return stats
