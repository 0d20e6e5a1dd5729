import subprocess
import sys


def test_cli_help() -> None:
    cp = subprocess.run(
        [sys.executable, "-m", "flydiv", "--help"],
        check=True,
        capture_output=True,
        text=True,
    )
    assert "flydiv" in cp.stdout.lower()
    for cmd in ("divsites", "polysites", "ffsites", "sort-fasta"):
        assert cmd in cp.stdout
