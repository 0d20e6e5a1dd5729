import io
from pathlib import Path

import pytest

from flydiv.axt import AlignmentCursor, iter_axt_blocks
from flydiv.errors import EndOfInputError, ErrorKind, FormatError, ParameterError
from flydiv.models import GAP_STATES

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


def _write(tmp_path: Path, text: str, name: str = "test.axt") -> Path:
    p = tmp_path / name
    p.write_text(text, encoding="utf-8")
    return p


def test_gapped_block_resolves_position(tmp_path: Path) -> None:
    axt = _write(
        tmp_path,
        "0 chr2L 1000000 1000010 chr2Lsim 5000000 5000010 + 9000\nACGT-ACGTA\nACGTAACGTA\n",
    )
    with AlignmentCursor(axt) as cursor:
        states = cursor.resolve_site("chr2L", 1000003)
        assert states.primary == "T"
        assert states.aligned == "T"
        assert not states.is_diverged
        assert not states.same_chrom

        # the gap column is not a primary position
        after_gap = cursor.resolve_site("chr2L", 1000004)
        assert (after_gap.primary, after_gap.aligned) == ("A", "A")


def test_repeated_query_reads_no_more_blocks(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        first = cursor.resolve_site("chr2L", 103)
        read = cursor.blocks_read
        again = cursor.resolve_site("chr2L", 103)
        assert again == first
        assert cursor.blocks_read == read
        later = cursor.resolve_site("chr2L", 123)

    with AlignmentCursor(_write(tmp_path, AXT, "single.axt")) as single:
        assert single.resolve_site("chr2L", 103) == first
        assert single.resolve_site("chr2L", 123) == later


def test_long_gapped_block_lookup(tmp_path: Path) -> None:
    primary = "ACG-T" * 4000
    aligned = "ACGTT" * 4000
    n_bases = len(primary.replace("-", ""))
    header = f"0 chr2L 1 {n_bases} chr2L 1 {len(aligned)} + 100\n"
    with AlignmentCursor(_write(tmp_path, header + primary + "\n" + aligned + "\n")) as cursor:
        # every fourth primary base sits after a gap column
        assert cursor.resolve_site("chr2L", 1).primary == "A"
        assert cursor.resolve_site("chr2L", 4).aligned == "T"
        last = cursor.resolve_site("chr2L", n_bases)
        assert (last.primary, last.aligned) == ("T", "T")
        assert cursor.blocks_read == 1


def test_block_shorter_than_span_returns_gap(tmp_path: Path) -> None:
    axt = _write(
        tmp_path,
        "0 chr2L 1000000 1000010 chr2L 5000000 5000010 + 9000\nACGT-ACGTA\nACGTAACGTA\n",
    )
    with AlignmentCursor(axt) as cursor:
        assert cursor.resolve_site("chr2L", 1000010) == GAP_STATES


def test_uncovered_positions_are_gaps(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        assert cursor.resolve_site("chr2L", 50) == GAP_STATES
        assert cursor.resolve_site("chr2L", 115) == GAP_STATES
        states = cursor.resolve_site("chr2L", 123)
        assert (states.primary, states.aligned, states.same_chrom) == ("G", "A", False)


def test_diverged_sites_in_range(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        sites, length = cursor.diverged_sites_in_range("chr2L", 101, 125)

    # 109 has an N in the outgroup, 111..120 are not aligned
    assert length == 14
    assert [s.position for s in sites] == [103, 123]
    first, second = sites
    assert (first.primary, first.aligned, first.same_chrom, first.good_quality) == ("G", "C", True, True)
    assert not second.same_chrom
    assert first.to_row() == "chr2L\t103\tG\tC\t1\t1"


def test_soft_masked_base_is_not_diverged(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        states = cursor.resolve_site("chr2L", 110)
    assert states.is_informative
    assert not states.is_diverged
    assert not states.good_quality


def test_range_on_scanned_chromosome_is_empty(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        cursor.diverged_sites_in_range("chr2L", 101, 130)
        assert cursor.last_scanned_chrom == "chr2L"
        assert cursor.diverged_sites_in_range("chr2L", 140, 150) == ([], 0)
        # the cursor has moved on to chr3R and can still answer for it
        sites, length = cursor.diverged_sites_in_range("chr3R", 11, 15)
    assert length == 5
    assert [s.position for s in sites] == [15]


def test_diverged_sites_at_positions(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        sites, lengths = cursor.diverged_sites_at_positions(
            ["chr2L", "chr2L", "chr2L", "chr2L", "chr3R"],
            [103, 109, 115, 123, 15],
        )
    assert lengths == {"chr2L": 2, "chr3R": 1}
    assert [(s.chrom, s.position) for s in sites] == [("chr2L", 103), ("chr2L", 123), ("chr3R", 15)]


def test_positions_skip_scanned_chromosome(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        sites, lengths = cursor.diverged_sites_at_positions(
            ["chr2L", "chr2L", "chr3R"],
            [200, 300, 15],
        )
    assert lengths == {"chr3R": 1}
    assert [s.position for s in sites] == [15]


def test_outgroup_state(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        s = cursor.outgroup_state("chr2L", 103)
        assert s.available and s.base == "C" and s.same_chrom and s.good_quality

        n_site = cursor.outgroup_state("chr2L", 109)
        assert not n_site.available
        assert n_site.same_chrom

        masked = cursor.outgroup_state("chr2L", 110)
        assert masked.base == "c"
        assert not masked.good_quality

        assert not cursor.outgroup_state("chr2L", 115).available


def test_block_summary(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        assert cursor.block_summary() == "chr2L 1 101 110 201 210"
        cursor.resolve_site("chr2L", 122)
        assert cursor.block_summary() == "chr2L 0 121 125 301 305"


def test_missing_chromosome_raises_end_of_input(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        with pytest.raises(EndOfInputError) as excinfo:
            cursor.resolve_site("chrX", 10)
    assert excinfo.value.kind is ErrorKind.END_OF_INPUT


def test_inverted_range_raises(tmp_path: Path) -> None:
    with AlignmentCursor(_write(tmp_path, AXT)) as cursor:
        with pytest.raises(ParameterError):
            cursor.diverged_sites_in_range("chr2L", 120, 110)
        with pytest.raises(ParameterError):
            cursor.diverged_sites_at_positions(["chr2L"], [1, 2])


def test_empty_file_raises(tmp_path: Path) -> None:
    with pytest.raises(FormatError):
        AlignmentCursor(_write(tmp_path, "\n# nothing here\n"))


def test_gzipped_input(tmp_path: Path) -> None:
    import gzip

    p = tmp_path / "test.axt.gz"
    with gzip.open(p, "wt") as fh:
        fh.write(AXT)
    with AlignmentCursor(p) as cursor:
        assert cursor.resolve_site("chr2L", 101).primary == "A"


@pytest.mark.parametrize(
    "text, error",
    [
        ("0 chr2L 101 110 chr2L 201 210 +\nACGT\nACGT\n", FormatError),
        ("0 U 101 104 chr2L 201 204 + 10\nACGT\nACGT\n", FormatError),
        ("0 chr2L 0 3 chr2L 201 204 + 10\nACGT\nACGT\n", FormatError),
        ("0 chr2L 101 98 chr2L 201 204 + 10\nACGT\nACGT\n", FormatError),
        ("0 chr2L abc 104 chr2L 201 204 + 10\nACGT\nACGT\n", FormatError),
        ("0 chr2L 101 104 chr2L 201 204 + 10\nACGT\nACG\n", FormatError),
        (
            "0 chr2L 101 104 chr2L 201 204 + 10\nACGT\nACGT\n"
            "1 chr2L 101 104 chr2L 301 304 + 10\nACGT\nACGT\n",
            FormatError,
        ),
        ("0 chr2L 101 104 chr2L 201 204 + 10\nACGT\n", EndOfInputError),
    ],
)
def test_malformed_blocks(text: str, error: type) -> None:
    with pytest.raises(error):
        list(iter_axt_blocks(io.StringIO(text)))


def test_bare_arm_names_are_normalized() -> None:
    blocks = list(iter_axt_blocks(io.StringIO("0 2L 101 104 2L 201 204 + 10\nACGT\nACGA\n")))
    assert blocks[0].primary_chrom == "chr2L"
    assert blocks[0].same_chrom
