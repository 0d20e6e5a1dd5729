from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Tuple

import pysam

from .utils import ensure_outdir, write_json

# (index, chrom, start, primary sequence, aligned chrom, aligned start, diverged offsets, masked offsets)
_BLOCKS = [
    ("0", "chr2L", 101, "ATGCCGGCTACGGTAGCATT", "chr2L", 201, [3, 9], [15]),
    ("1", "chr2L", 151, "TTTTAATCGCGTGGAACCTC", "chr2L", 251, [12], []),
    ("2", "chr3R", 51, "CTGAAAGCCTTACG", "chr3L", 11, [4], []),
]

# (contig, 1-based pos, ref, alt, AC, AN, MLEAC, genotypes)
_VARIANTS = [
    ("2L", 105, "C", "T", 1, 6, 1, [(0, 1), (0, 0), (0, 0), (None, None)]),
    ("2L", 110, "A", "C", 5, 6, 5, [(1, 1), (1, 1), (0, 1), (None, None)]),
    ("2L", 130, "G", "A", 2, 8, 2, [(0, 1), (0, 1), (0, 0), (0, 0)]),
    ("2L", 163, "G", "GA", 2, 8, 2, [(0, 1), (0, 1), (0, 0), (0, 0)]),
    ("2L", 165, "A", "G", 3, 8, 3, [(0, 1), (1, 1), (0, 0), (0, 0)]),
]

# FlyBase-style CDS headers; the first two genes share the codon at 160..162
_CDS = [
    (
        "FBpp0000001",
        "type=CDS; loc=2L:join(101..112,151..162); name=toy-a-PA; parent=FBgn0000001,FBtr0000001;",
        "ATGCCGGCTACGGTAGCATTTTAA",
    ),
    (
        "FBpp0000002",
        "type=CDS; loc=2L:complement(160..177); name=toy-b-PA; parent=FBgn0000002,FBtr0000002;",
        "ATGCGTGGAACCTCGTAG",
    ),
    (
        "FBpp0000003",
        "type=CDS; loc=3R:51..59; name=toy-c-PA; parent=FBgn0000003,FBtr0000003;",
        "CTGAAAGCC",
    ),
]

_CDS_OTHER_CONTIG = (
    "FBpp0000004",
    "type=CDS; loc=Scf_Unmapped:1..9; name=toy-d-PA; parent=FBgn0000004,FBtr0000004;",
    "ATGGCCTAA",
)


def _mutate_base(base: str) -> str:
    for alt in ["A", "C", "G", "T"]:
        if alt != base.upper():
            return alt
    return "A"


def _aligned_sequence(primary: str, diverged: Iterable[int], masked: Iterable[int]) -> str:
    seq = list(primary)
    for i in diverged:
        seq[i] = _mutate_base(seq[i])
    for i in masked:
        seq[i] = seq[i].lower()
    return "".join(seq)


def _write_axt(path: Path) -> None:
    lines: List[str] = []
    for index, chrom, start, primary, a_chrom, a_start, diverged, masked in _BLOCKS:
        end = start + len(primary) - 1
        a_end = a_start + len(primary) - 1
        lines.append(f"{index} {chrom} {start} {end} {a_chrom} {a_start} {a_end} + 5000")
        lines.append(primary)
        lines.append(_aligned_sequence(primary, diverged, masked))
        lines.append("")
    path.write_text("\n".join(lines), encoding="utf-8")


def _write_vcf(path: Path) -> Path:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for s in ("S1", "S2", "S3", "S4"):
        header.add_sample(s)
    header.contigs.add("2L", length=1000)
    header.contigs.add("3R", length=1000)
    header.info.add("AC", number="A", type="Integer", description="Allele count in genotypes")
    header.info.add("AF", number="A", type="Float", description="Allele frequency")
    header.info.add("AN", number=1, type="Integer", description="Total number of alleles called")
    header.info.add("MLEAC", number="A", type="Integer", description="Maximum likelihood allele count")
    header.info.add("MLEAF", number="A", type="Float", description="Maximum likelihood allele frequency")
    header.formats.add("GT", number=1, type="String", description="Genotype")

    with pysam.VariantFile(str(path), "w", header=header) as vcf:
        for contig, pos, ref, alt, ac, an, mleac, gts in _VARIANTS:
            rec = vcf.new_record(
                contig=contig,
                start=pos - 1,
                stop=pos - 1 + len(ref),
                alleles=(ref, alt),
                qual=50,
                filter="PASS",
            )
            rec.info["AC"] = (ac,)
            rec.info["AF"] = (round(ac / an, 3),)
            rec.info["AN"] = an
            rec.info["MLEAC"] = (mleac,)
            rec.info["MLEAF"] = (round(mleac / an, 3),)
            for sample, gt in zip(("S1", "S2", "S3", "S4"), gts):
                rec.samples[sample]["GT"] = gt
            vcf.write(rec)

    vcf_gz = path.with_suffix(".vcf.gz")
    pysam.tabix_compress(str(path), str(vcf_gz), force=True)
    return vcf_gz


def _write_fasta(path: Path, records: Iterable[Tuple[str, str, str]]) -> None:
    lines = []
    for name, comment, seq in records:
        lines.append(f">{name} {comment}")
        for i in range(0, len(seq), 60):
            lines.append(seq[i : i + 60])
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")


def make_toy_data(*, outdir: str | Path) -> Dict[str, str]:
    """Create a tiny alignment, VCF, CDS FASTA and query files for demos/tests.

    The outputs include:
    - toy.net.axt (chr2L and chr3R blocks against a simulans-like outgroup)
    - toy.vcf.gz (bgzipped; four samples with GATK-style INFO counts)
    - cds.fa (sorted) and cds_unsorted.fa (input for ``sort-fasta``)
    - positions.txt and ranges.txt (query files)

    Returns
    -------
    dict
        Paths to the generated files.
    """
    outdir_p = ensure_outdir(outdir)

    axt_path = outdir_p / "toy.net.axt"
    _write_axt(axt_path)

    vcf_gz = _write_vcf(outdir_p / "toy.vcf")

    cds_sorted = outdir_p / "cds.fa"
    _write_fasta(cds_sorted, _CDS)
    cds_unsorted = outdir_p / "cds_unsorted.fa"
    _write_fasta(cds_unsorted, [_CDS[2], _CDS_OTHER_CONTIG, _CDS[1], _CDS[0]])

    positions = outdir_p / "positions.txt"
    positions.write_text(
        "chr\tpos\n2L\t104\n2L\t105\n2L\t110\n2L\t130\n2L\t165\n3R\t55\n", encoding="utf-8"
    )
    ranges = outdir_p / "ranges.txt"
    ranges.write_text("2L\t100\t125\tpeak_a\n2L\t150\t175\tpeak_b\n3R\t50\t60\tpeak_c\n", encoding="utf-8")

    summary = {
        "axt": str(axt_path),
        "vcf": str(vcf_gz),
        "cds_fasta": str(cds_sorted),
        "cds_fasta_unsorted": str(cds_unsorted),
        "positions": str(positions),
        "ranges": str(ranges),
        "outdir": str(outdir_p),
    }

    write_json(outdir_p / "toy_summary.json", summary)
    return summary
