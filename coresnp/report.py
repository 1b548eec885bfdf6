"""Summarize the per-sample core report written by the core extractor."""

import logging
from pathlib import Path

import numpy as np
import pandas as pd

REPORT_COLUMNS = ("ID", "LENGTH", "ALIGNED", "UNALIGNED", "VARIANT", "HET", "MASKED", "LOWCOV")


def summarise_core_report(report_path: Path) -> pd.DataFrame:
    """Load the core report and add the aligned fraction per sample."""
    if not report_path.exists():
        raise FileNotFoundError(f"Core report not found: {report_path}")
    df = pd.read_csv(report_path, sep="\t")
    df.rename(columns=lambda col: str(col).lstrip("#"), inplace=True)
    missing_cols = set(REPORT_COLUMNS) - set(df.columns)
    if missing_cols:
        raise ValueError(
            f"Core report missing required columns: {', '.join(sorted(missing_cols))}"
        )
    lengths = df["LENGTH"].replace(0, np.nan)
    df["aligned_fraction"] = (df["ALIGNED"] / lengths).fillna(0.0)
    return df


def weighted_aligned_fraction(df: pd.DataFrame) -> float:
    """Length-weighted mean aligned fraction over all samples."""
    if df.empty or df["LENGTH"].sum() == 0:
        return 0.0
    return float(np.average(df["aligned_fraction"], weights=df["LENGTH"]))


def log_core_summary(report_path: Path) -> None:
    df = summarise_core_report(report_path)
    for row in df.itertuples(index=False):
        logging.info(
            "%s: %.1f%% aligned, %d variants, %d low coverage",
            row.ID,
            100.0 * row.aligned_fraction,
            row.VARIANT,
            row.LOWCOV,
        )
    logging.info(
        "Core report: %d rows, mean aligned fraction %.3f.",
        len(df),
        weighted_aligned_fraction(df),
    )
