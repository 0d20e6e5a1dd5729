from pathlib import Path
from typing import List, Tuple

import pysam
import pytest

from flydiv.axt import AlignmentCursor
from flydiv.errors import FormatError, ParameterError
from flydiv.models import AncestralState
from flydiv.vcf import VariantSiteAnnotator

AXT = """\
0 chr2L 101 110 chr2L 201 210 + 100
ACGTACGTAC
ACCTACGTNc
1 chr2L 121 125 chr2R 301 305 + 100
GGGGG
GGAGG
2 chr3R 11 15 chr3R 11 15 + 100
ACGTA
ACGTT
"""

# contig, pos, ref, alt, AC, AN, MLEAC, genotypes
VARIANTS: List[tuple] = [
    ("2L", 101, "A", "T", 2, 8, 2, [(0, 1), (0, 1), (0, 0), (0, 0)]),
    ("2L", 105, "A", "AT", 1, 8, 1, [(0, 1), (0, 0), (0, 0), (0, 0)]),
    ("2L", 109, "A", "G", 1, 8, 1, [(0, 1), (0, 0), (0, 0), (0, 0)]),
    ("2L", 110, "C", "T", 4, 8, 4, [(1, 1), (0, 1), (0, 1), (0, 0)]),
    ("2L", 115, "T", "C", 1, 8, 1, [(0, 1), (0, 0), (0, 0), (0, 0)]),
    ("2L", 123, "G", "A", 2, 8, 2, [(0, 1), (0, 1), (0, 0), (0, 0)]),
    ("3R", 15, "A", "T", 3, 8, 3, [(0, 1), (1, 1), (0, 0), (None, None)]),
]


def _header(contigs: Tuple[str, ...] = ("2L", "3R")) -> pysam.VariantHeader:
    header = pysam.VariantHeader()
    header.add_meta("fileformat", "VCFv4.2")
    for s in ("S1", "S2", "S3", "S4"):
        header.add_sample(s)
    for contig in contigs:
        header.contigs.add(contig, length=1000)
    header.info.add("AC", number="A", type="Integer", description="Allele count")
    header.info.add("AF", number="A", type="Float", description="Allele frequency")
    header.info.add("AN", number=1, type="Integer", description="Allele number")
    header.info.add("MLEAC", number="A", type="Integer", description="ML allele count")
    header.info.add("MLEAF", number="A", type="Float", description="ML allele frequency")
    header.formats.add("GT", number=1, type="String", description="Genotype")
    return header


def _make_vcf(path: Path, variants: List[tuple], contigs: Tuple[str, ...] = ("2L", "3R")) -> Path:
    vcf_path = path / "pop.vcf"
    with pysam.VariantFile(str(vcf_path), "w", header=_header(contigs)) as vcf:
        for contig, pos, ref, alt, ac, an, mleac, gts in variants:
            rec = vcf.new_record(
                contig=contig,
                start=pos - 1,
                stop=pos - 1 + len(ref),
                alleles=(ref, alt),
                qual=50,
                filter="PASS",
            )
            rec.info["AC"] = (ac,)
            rec.info["AF"] = (ac / an,)
            rec.info["AN"] = an
            rec.info["MLEAC"] = (mleac,)
            rec.info["MLEAF"] = (mleac / an,)
            for sample, gt in zip(("S1", "S2", "S3", "S4"), gts):
                rec.samples[sample]["GT"] = gt
            vcf.write(rec)
    return vcf_path


@pytest.fixture()
def inputs(tmp_path: Path) -> Tuple[Path, Path]:
    axt = tmp_path / "pop.axt"
    axt.write_text(AXT, encoding="utf-8")
    return axt, _make_vcf(tmp_path, VARIANTS)


def test_ranges_assign_ancestral_states(inputs: Tuple[Path, Path]) -> None:
    axt_path, vcf_path = inputs
    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf:
        first = vcf.polymorphic_sites_in_range("chr2L", 100, 112)
        second = vcf.polymorphic_sites_in_range("chr2L", 113, 130)
        third = vcf.polymorphic_sites_in_range("chr3R", 1, 20)
        stats = dict(vcf.stats)

    # the indel at 105 is not reported
    assert [s.variant.position for s in first] == [101, 109, 110]
    assert [s.ancestral for s in first] == [
        AncestralState.REFERENCE,
        AncestralState.UNKNOWN,
        AncestralState.REFERENCE,
    ]
    # soft-masked outgroup base
    assert not first[2].outgroup_quality

    assert [(s.variant.position, s.ancestral) for s in second] == [
        (115, AncestralState.UNKNOWN),
        (123, AncestralState.ALTERNATE),
    ]
    assert not second[1].outgroup_same_chrom

    assert len(third) == 1
    assert stats["records_seen"] == 7
    assert stats["records_non_snp"] == 1
    assert stats["sites"] == 6
    assert stats["ancestral_reference"] == 2
    assert stats["ancestral_alternate"] == 2
    assert stats["ancestral_unknown"] == 2


def test_alternate_ancestral_state_reports_complements(inputs: Tuple[Path, Path]) -> None:
    axt_path, vcf_path = inputs
    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf:
        (site,) = vcf.polymorphic_sites_in_range("chr3R", 1, 20)

    assert site.ancestral is AncestralState.ALTERNATE
    assert site.variant.chrom == "chr3R"
    assert site.variant.n_missing == 1
    assert site.derived_ac == 5
    assert site.derived_af == pytest.approx(0.625)
    assert site.to_row() == "chr3R\t15\tA\tT\ta\t5\t5\t0.625\t0.625\t1\t1\t1\t50"


def test_reference_ancestral_state_keeps_raw_counts(inputs: Tuple[Path, Path]) -> None:
    axt_path, vcf_path = inputs
    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf:
        site = vcf.polymorphic_sites_in_range("chr2L", 100, 102)[0]
    assert site.derived_ac == 2
    assert site.derived_mleac == 2
    assert site.derived_af == pytest.approx(0.25)
    assert site.variant.called == 8
    assert site.variant.n_missing == 0


def test_positions(inputs: Tuple[Path, Path]) -> None:
    axt_path, vcf_path = inputs
    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf:
        sites = vcf.polymorphic_sites_at_positions(["chr2L", "chr2L", "chr3R"], [101, 123, 15])
    assert [(s.variant.chrom, s.variant.position) for s in sites] == [
        ("chr2L", 101),
        ("chr2L", 123),
        ("chr3R", 15),
    ]


def test_scanned_chromosome_returns_nothing(inputs: Tuple[Path, Path]) -> None:
    axt_path, vcf_path = inputs
    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf:
        vcf.polymorphic_sites_in_range("chr2L", 100, 130)
        vcf.polymorphic_sites_in_range("chr3R", 1, 20)
        assert vcf.last_scanned_chrom == "chr3R"
        assert vcf.polymorphic_sites_in_range("chr3R", 30, 40) == []


def test_undeclared_chromosome_does_not_consume_records(inputs: Tuple[Path, Path]) -> None:
    axt_path, vcf_path = inputs
    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf:
        assert len(vcf.polymorphic_sites_in_range("chr2L", 100, 130)) == 5
        assert vcf.polymorphic_sites_in_range("chr2R", 1, 50) == []
        assert not vcf.exhausted
        third = vcf.polymorphic_sites_in_range("chr3R", 1, 20)
    assert [(s.variant.chrom, s.variant.position) for s in third] == [("chr3R", 15)]


def test_declared_chromosome_without_records(tmp_path: Path) -> None:
    axt = tmp_path / "pop.axt"
    axt.write_text(AXT, encoding="utf-8")
    vcf_path = _make_vcf(tmp_path, VARIANTS, contigs=("2L", "2R", "3R"))
    with AlignmentCursor(axt) as cursor, VariantSiteAnnotator(vcf_path, cursor) as vcf:
        vcf.polymorphic_sites_in_range("chr2L", 100, 130)
        seen = vcf.stats["records_seen"]
        assert vcf.polymorphic_sites_at_positions(["chr2R", "chr2R"], [10, 20]) == []
        assert vcf.stats["records_seen"] == seen
        assert vcf.last_scanned_chrom == "chr2R"
        sites = vcf.polymorphic_sites_at_positions(["chr3R"], [15])
    assert [s.variant.position for s in sites] == [15]


def test_file_closed_when_first_read_fails(inputs: Tuple[Path, Path], monkeypatch: pytest.MonkeyPatch) -> None:
    axt_path, vcf_path = inputs
    closed: List[bool] = []
    real_close = VariantSiteAnnotator.close

    def _close(self: VariantSiteAnnotator) -> None:
        closed.append(True)
        real_close(self)

    def _broken(self: VariantSiteAnnotator) -> None:
        raise ValueError("malformed record")

    monkeypatch.setattr(VariantSiteAnnotator, "close", _close)
    monkeypatch.setattr(VariantSiteAnnotator, "_advance", _broken)
    with AlignmentCursor(axt_path) as cursor:
        with pytest.raises(ValueError):
            VariantSiteAnnotator(vcf_path, cursor)
    assert closed == [True]


def test_parameter_errors(inputs: Tuple[Path, Path]) -> None:
    axt_path, vcf_path = inputs
    with AlignmentCursor(axt_path) as axt, VariantSiteAnnotator(vcf_path, axt) as vcf:
        with pytest.raises(ParameterError):
            vcf.polymorphic_sites_in_range("chr2L", 130, 100)
        with pytest.raises(ParameterError):
            vcf.polymorphic_sites_at_positions(["chr2L", "chr2L"], [101])


def test_vcf_without_records(tmp_path: Path) -> None:
    axt = tmp_path / "pop.axt"
    axt.write_text(AXT, encoding="utf-8")
    vcf_path = _make_vcf(tmp_path, [])
    with AlignmentCursor(axt) as cursor:
        with pytest.raises(FormatError):
            VariantSiteAnnotator(vcf_path, cursor)
