"""flydiv: divergence, four-fold site and polymorphism tables for Drosophila genomes.

Public API is intentionally small; most users should use the CLI:

    flydiv divsites --axt dm6.droSim1.net.axt --query sites.tsv --out diverged.tsv

"""

from __future__ import annotations

__all__ = ["__version__"]

__version__ = "0.1.0"
