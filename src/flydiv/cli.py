from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

from . import __version__
from .fasta_sort import sort_cds_fasta
from .pipeline import run_divsites, run_ffsites, run_polysites
from .plotting import plot_ancestral_counts, plot_daf_hist, plot_divergence_by_chrom
from .report import render_report
from .toy_data import make_toy_data
from .utils import ensure_outdir, write_json


def _setup_logging(verbosity: int, *, logfile: Optional[Path] = None) -> None:
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    log_fmt = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
    logging.basicConfig(level=level, format=log_fmt, stream=sys.stderr)

    if logfile is not None:
        logfile.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(logfile)
        # the log file records every overlap decision regardless of -v
        fh.setLevel(logging.INFO)
        fh.setFormatter(logging.Formatter(log_fmt))
        root = logging.getLogger()
        root.addHandler(fh)
        if root.level > logging.INFO:
            root.setLevel(logging.INFO)
            for h in root.handlers:
                if h is not fh:
                    h.setLevel(level)


def _path_exists(p: str) -> str:
    if not Path(p).exists():
        raise argparse.ArgumentTypeError(f"Path does not exist: {p}")
    return p


def _handle_error(err: Exception, *, log_path: Optional[Path] = None) -> int:
    msg = f"{err.__class__.__name__}: {err}"

    sys.stderr.write(msg + "\n")
    if log_path is not None:
        sys.stderr.write(f"See log: {log_path}\n")
    return 2


def _add_common(sp: argparse.ArgumentParser, *, log_required: bool = False) -> None:
    sp.add_argument(
        "--log",
        required=log_required,
        default=None,
        help="Write a log file (INFO level and above) in addition to stderr.",
    )
    sp.add_argument("--summary-json", default=None, help="Write the run summary as JSON.")
    sp.add_argument("--dry-run", action="store_true", help="Validate inputs and print planned outputs.")
    sp.add_argument("--resume", action="store_true", help="Skip if the output table already exists.")
    sp.add_argument("-v", "--verbose", action="count", default=0, help="Increase verbosity (-v/-vv).")


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="flydiv",
        description=(
            "flydiv: divergence, four-fold degenerate site and polymorphism tables for "
            "Drosophila population genomics, streamed from .axt alignments, CDS FASTA and VCF."
        ),
    )
    p.add_argument("--version", action="version", version=f"flydiv {__version__}")

    sub = p.add_subparsers(dest="cmd", required=True)

    # -----------------
    # quickstart
    # -----------------
    sub.add_parser(
        "quickstart",
        help="Print ready-to-run recipes for common analyses.",
    )

    # -----------------
    # make-toy-data
    # -----------------
    t = sub.add_parser(
        "make-toy-data",
        help="Generate a tiny alignment, VCF, CDS FASTA and query files for demos/tests.",
    )
    t.add_argument("--outdir", required=True, help="Output directory for toy data.")
    t.add_argument("--dry-run", action="store_true", help="Validate paths without writing files.")

    # -----------------
    # divsites
    # -----------------
    d = sub.add_parser(
        "divsites",
        help="Diverged sites between the primary genome and an outgroup (.axt) at query positions or ranges.",
    )
    d.add_argument(
        "--axt",
        required=True,
        type=_path_exists,
        help="Pairwise alignment (.axt or .axt.gz), blocks sorted by primary position.",
    )
    d.add_argument(
        "--query",
        required=True,
        type=_path_exists,
        help="Query file: 'chr pos' per line, or 'chr start end ...' per line for ranges.",
    )
    d.add_argument("--out", required=True, help="Output TSV path.")
    d.add_argument(
        "--report-dir",
        default=None,
        help="Write report.html and plots/ into this directory.",
    )
    d.add_argument("--progress", action="store_true", help="Show a progress bar.")
    _add_common(d)

    # -----------------
    # polysites
    # -----------------
    ps = sub.add_parser(
        "polysites",
        help="Polymorphic SNPs from a VCF with outgroup-based ancestral states.",
    )
    ps.add_argument("--axt", required=True, type=_path_exists, help="Primary vs outgroup alignment (.axt).")
    ps.add_argument("--vcf", required=True, type=_path_exists, help="Population VCF (.vcf/.vcf.gz).")
    ps.add_argument(
        "--query",
        required=True,
        type=_path_exists,
        help="Query file: 'chr pos' per line, or 'chr start end ...' per line for ranges.",
    )
    ps.add_argument("--out", required=True, help="Output TSV path.")
    ps.add_argument(
        "--report-dir",
        default=None,
        help="Write report.html and plots/ into this directory.",
    )
    ps.add_argument("--progress", action="store_true", help="Show a progress bar.")
    _add_common(ps)

    # -----------------
    # ffsites
    # -----------------
    f = sub.add_parser(
        "ffsites",
        help="Four-fold degenerate sites from a sorted CDS FASTA, resolving overlapping genes.",
    )
    f.add_argument(
        "--fasta",
        required=True,
        type=_path_exists,
        help="CDS FASTA sorted by chromosome and start (see sort-fasta).",
    )
    f.add_argument("--out", required=True, help="Output TSV path.")
    f.add_argument(
        "--report-dir",
        default=None,
        help="Write report.html into this directory.",
    )
    _add_common(f, log_required=True)

    # -----------------
    # sort-fasta
    # -----------------
    s = sub.add_parser(
        "sort-fasta",
        help="Sort a CDS FASTA by chromosome arm and start; drop non-arm contigs.",
    )
    s.add_argument("--fasta", required=True, type=_path_exists, help="Input CDS FASTA.")
    s.add_argument("--out", required=True, help="Output FASTA path.")
    _add_common(s)

    return p


# -----------------
# Command handlers
# -----------------

def cmd_quickstart() -> int:
    lines = [
        "flydiv quickstart (copy/paste):",
        "",
        "1) Divergence in peaks (ranges) against D. simulans:",
        "   flydiv divsites \\",
        "     --axt dm6.droSim1.net.axt.gz \\",
        "     --query peaks.bed \\",
        "     --out div_peaks.tsv",
        "",
        "2) Polymorphism with ancestral states at four-fold sites:",
        "   flydiv sort-fasta --fasta dmel-all-CDS.fasta --out cds.sorted.fa",
        "   flydiv ffsites --fasta cds.sorted.fa --out ffsites.tsv --log ffsites.log",
        "   flydiv polysites \\",
        "     --axt dm6.droSim1.net.axt.gz \\",
        "     --vcf population.vcf.gz \\",
        "     --query ffsites_positions.txt \\",
        "     --out poly_ff.tsv \\",
        "     --report-dir poly_report/",
        "",
        "3) Try it on toy data:",
        "   flydiv make-toy-data --outdir toy/",
        "   flydiv divsites --axt toy/toy.net.axt --query toy/ranges.txt --out toy/div.tsv",
        "",
        "Tip: use --dry-run to validate inputs and print the planned outputs.",
    ]
    print("\n".join(lines))
    return 0


def _log_path(args: argparse.Namespace) -> Optional[Path]:
    if args.log is None or args.dry_run:
        return None
    return Path(args.log).expanduser().resolve()


def _finish(args: argparse.Namespace, summary: Dict[str, Any]) -> None:
    if args.summary_json:
        path = Path(args.summary_json)
        path.parent.mkdir(parents=True, exist_ok=True)
        write_json(path, summary)


def _dry_run(outputs: List[str]) -> int:
    print("Dry-run: inputs look OK.")
    print("Planned outputs:")
    for o in outputs:
        print(f"  {o}")
    return 0


def _planned(args: argparse.Namespace) -> List[str]:
    outputs = [str(Path(args.out).expanduser().resolve())]
    if getattr(args, "report_dir", None):
        outputs.append(str(Path(args.report_dir).expanduser().resolve() / "report.html"))
    if args.summary_json:
        outputs.append(str(Path(args.summary_json).expanduser().resolve()))
    if args.log:
        outputs.append(str(Path(args.log).expanduser().resolve()))
    return outputs


def _resumable(args: argparse.Namespace, logger: logging.Logger) -> bool:
    out = Path(args.out)
    if args.resume and out.exists():
        logger.info("Resume enabled: %s already exists", out)
        print(str(out))
        return True
    return False


def cmd_make_toy_data(args: argparse.Namespace) -> int:
    outdir = Path(args.outdir).expanduser().resolve()
    if args.dry_run:
        print(f"Would write toy data into: {outdir}")
        return 0

    summary = make_toy_data(outdir=outdir)
    print(json.dumps(summary, indent=2))
    return 0


def cmd_divsites(args: argparse.Namespace) -> int:
    log_path = _log_path(args)
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("flydiv")
    logger.info("flydiv %s", __version__)

    try:
        if args.dry_run:
            return _dry_run(_planned(args))
        if _resumable(args, logger):
            return 0

        summary = run_divsites(
            axt_path=args.axt,
            query_path=args.query,
            out_path=args.out,
            progress=bool(args.progress),
        )

        if args.report_dir:
            report_dir = ensure_outdir(Path(args.report_dir).expanduser().resolve())
            div_png = report_dir / "plots" / "divergence_by_chrom.png"
            plot_divergence_by_chrom(
                diverged=summary["diverged_sites"],
                covered=summary["covered_length"],
                out_png=div_png,
            )
            report_path = render_report(
                outdir=report_dir,
                version=__version__,
                summary=summary,
                plots={"divergence_by_chrom": str(Path("plots") / div_png.name)},
            )
            logger.info("Report written: %s", report_path)

        _finish(args, summary)
        print(str(args.out))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_polysites(args: argparse.Namespace) -> int:
    log_path = _log_path(args)
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("flydiv")
    logger.info("flydiv %s", __version__)

    try:
        if args.dry_run:
            return _dry_run(_planned(args))
        if _resumable(args, logger):
            return 0

        summary = run_polysites(
            axt_path=args.axt,
            vcf_path=args.vcf,
            query_path=args.query,
            out_path=args.out,
            progress=bool(args.progress),
        )

        if args.report_dir:
            report_dir = ensure_outdir(Path(args.report_dir).expanduser().resolve())
            plots_dir = report_dir / "plots"
            daf_png = plots_dir / "daf_hist.png"
            anc_png = plots_dir / "ancestral_counts.png"
            plot_daf_hist(
                bin_edges=summary["daf_hist"]["bin_edges"],
                counts=summary["daf_hist"]["counts"],
                out_png=daf_png,
            )
            plot_ancestral_counts(counts=summary["counts"], out_png=anc_png)
            report_path = render_report(
                outdir=report_dir,
                version=__version__,
                summary=summary,
                plots={
                    "daf_hist": str(Path("plots") / daf_png.name),
                    "ancestral_counts": str(Path("plots") / anc_png.name),
                },
            )
            logger.info("Report written: %s", report_path)

        _finish(args, summary)
        print(str(args.out))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_ffsites(args: argparse.Namespace) -> int:
    log_path = _log_path(args)
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("flydiv")
    logger.info("flydiv %s", __version__)

    try:
        if args.dry_run:
            return _dry_run(_planned(args))
        if _resumable(args, logger):
            return 0

        summary = run_ffsites(fasta_path=args.fasta, out_path=args.out)

        if args.report_dir:
            report_path = render_report(
                outdir=Path(args.report_dir).expanduser().resolve(),
                version=__version__,
                summary=summary,
                plots={},
            )
            logger.info("Report written: %s", report_path)

        _finish(args, summary)
        print(str(args.out))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def cmd_sort_fasta(args: argparse.Namespace) -> int:
    log_path = _log_path(args)
    _setup_logging(args.verbose, logfile=log_path)

    logger = logging.getLogger("flydiv")

    try:
        if args.dry_run:
            return _dry_run(_planned(args))
        if _resumable(args, logger):
            return 0

        stats = sort_cds_fasta(args.fasta, args.out)
        _finish(
            args,
            {
                "command": "sort-fasta",
                "fasta_path": str(args.fasta),
                "out_path": str(args.out),
                "counts": stats,
            },
        )
        print(str(args.out))
        return 0
    except Exception as e:
        return _handle_error(e, log_path=log_path)


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.cmd == "quickstart":
        return cmd_quickstart()
    if args.cmd == "make-toy-data":
        return cmd_make_toy_data(args)
    if args.cmd == "divsites":
        return cmd_divsites(args)
    if args.cmd == "polysites":
        return cmd_polysites(args)
    if args.cmd == "ffsites":
        return cmd_ffsites(args)
    if args.cmd == "sort-fasta":
        return cmd_sort_fasta(args)

    parser.error(f"Unknown command: {args.cmd}")
    return 2
