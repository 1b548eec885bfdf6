import pytest

from coresnp.report import summarise_core_report, weighted_aligned_fraction

REPORT = (
    "ID\tLENGTH\tALIGNED\tUNALIGNED\tVARIANT\tHET\tMASKED\tLOWCOV\n"
    "alpha\t1000\t900\t100\t12\t0\t0\t100\n"
    "beta\t1000\t500\t500\t30\t1\t0\t500\n"
    "Reference\t0\t0\t0\t0\t0\t0\t0\n"
)


def test_summarise_core_report(tmp_path):
    path = tmp_path / "core.txt"
    path.write_text(REPORT)
    df = summarise_core_report(path)

    assert list(df["aligned_fraction"]) == pytest.approx([0.9, 0.5, 0.0])
    assert weighted_aligned_fraction(df) == pytest.approx(0.7)


def test_report_with_missing_columns(tmp_path):
    path = tmp_path / "core.txt"
    path.write_text("ID\tLENGTH\nalpha\t10\n")
    with pytest.raises(ValueError):
        summarise_core_report(path)


def test_missing_report(tmp_path):
    with pytest.raises(FileNotFoundError):
        summarise_core_report(tmp_path / "core.txt")
