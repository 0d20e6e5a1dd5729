from __future__ import annotations

import logging
from pathlib import Path
from typing import Dict, List

import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt  # noqa: E402

logger = logging.getLogger(__name__)


def plot_daf_hist(
    *,
    bin_edges: List[float],
    counts: List[int],
    out_png: str | Path,
    title: str = "Derived allele frequency spectrum",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    widths = [bin_edges[i + 1] - bin_edges[i] for i in range(len(counts))]
    centers = [bin_edges[i] + widths[i] / 2.0 for i in range(len(counts))]

    plt.figure()
    plt.bar(centers, counts, width=widths, align="center")
    plt.xlabel("Derived allele frequency (AF)")
    plt.ylabel("SNP count")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_ancestral_counts(
    *,
    counts: Dict[str, int],
    out_png: str | Path,
    title: str = "Ancestral state of polymorphic sites",
) -> None:
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    labels = ["Reference (r)", "Alternate (a)", "Unknown (u)"]
    values = [
        int(counts.get("ancestral_reference", 0)),
        int(counts.get("ancestral_alternate", 0)),
        int(counts.get("ancestral_unknown", 0)),
    ]

    plt.figure()
    plt.bar(labels, values)
    plt.ylabel("SNP count")
    plt.title(title)
    plt.xticks(rotation=15, ha="right")
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()


def plot_divergence_by_chrom(
    *,
    diverged: Dict[str, int],
    covered: Dict[str, int],
    out_png: str | Path,
    title: str = "Divergence per chromosome",
) -> None:
    """Plot diverged sites per covered (informative) site for each chromosome.

    Chromosomes with no covered sites are drawn at zero.
    """
    out_png = Path(out_png)
    out_png.parent.mkdir(parents=True, exist_ok=True)

    chroms = sorted(set(covered) | set(diverged))
    rates = []
    for c in chroms:
        n = int(covered.get(c, 0))
        rates.append(int(diverged.get(c, 0)) / n if n > 0 else 0.0)

    plt.figure()
    plt.bar(chroms, rates)
    plt.xlabel("Chromosome")
    plt.ylabel("Diverged / informative sites")
    plt.title(title)
    plt.tight_layout()
    plt.savefig(out_png, dpi=160)
    plt.close()
