"""
netbench/results.py

Output sinks for a finished run.

  write_csv              — one row per record: sequence_number,
                           elapsed_time_seconds, effective_rate_bps
  plot_latency_and_rate  — two stacked panels (latency, data rate) with a
                           rolling mean and an average line
  print_summary          — human-readable session summary on stdout

These only read MeasurementRecords / SessionSummary; they never touch
sockets.
"""

import logging
from pathlib import Path
from typing import Iterable, Union

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
import pandas as pd  # noqa: E402

from netbench.metrics import MeasurementRecord, SessionSummary  # noqa: E402

logger = logging.getLogger(__name__)

CSV_COLUMNS = ["sequence_number", "elapsed_time_seconds", "effective_rate_bps"]

DEFAULT_CSV_PATH = "download_metrics.csv"
DEFAULT_CHART_PATH = "latency_data_rate.png"

# Samples in the rolling mean drawn over the raw series
SMOOTHING_WINDOW = 5


def records_to_frame(records: Iterable[MeasurementRecord]) -> pd.DataFrame:
    rows = [
        {
            "sequence_number":      r.sequence_number,
            "elapsed_time_seconds": r.elapsed_time_seconds,
            "effective_rate_bps":   r.effective_rate_bps,
        }
        for r in records
    ]
    return pd.DataFrame(rows, columns=CSV_COLUMNS)


def write_csv(records: Iterable[MeasurementRecord], path: Union[str, Path] = DEFAULT_CSV_PATH) -> Path:
    """Write records to `path` with a header row. Returns the path written."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df = records_to_frame(records)
    df.to_csv(path, index=False)
    logger.info("Wrote %d rows to %s", len(df), path)
    return path


def plot_latency_and_rate(
    records: Iterable[MeasurementRecord],
    path: Union[str, Path] = DEFAULT_CHART_PATH,
    window: int = SMOOTHING_WINDOW,
) -> Path:
    """
    Render latency and effective data rate against sequence number.

    Raises:
        ValueError: if there are no records to plot
    """
    df = records_to_frame(records)
    if df.empty:
        raise ValueError("No records to plot")

    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    x = df["sequence_number"]
    panels = [
        ("elapsed_time_seconds", "Latency per Download", "Latency (s)", "tab:red", "{:.5f} s"),
        ("effective_rate_bps", "Effective Data Rate per Download", "Data Rate (bps)", "tab:blue", "{:.2e} bps"),
    ]

    fig, axes = plt.subplots(2, 1, figsize=(12.8, 9.6))
    try:
        for ax, (column, title, ylabel, color, avg_fmt) in zip(axes, panels):
            series = df[column]
            smoothed = series.rolling(window=window, min_periods=1).mean()
            avg = series.mean()

            ax.plot(x, series, color=color, alpha=0.3, label=ylabel)
            ax.plot(x, smoothed, color=color, label=f"{ylabel} (smoothed, n={window})")
            ax.axhline(avg, color=color, linestyle="--", linewidth=1.5,
                       label=f"Avg: {avg_fmt.format(avg)}")

            ax.set_title(title)
            ax.set_xlabel("Download Number")
            ax.set_ylabel(ylabel)
            ax.set_ylim(bottom=0)
            ax.grid(True, alpha=0.3)
            ax.legend()

        fig.tight_layout()
        fig.savefig(path)
    finally:
        plt.close(fig)

    logger.info("Chart saved to %s", path)
    return path


def print_summary(summary: SessionSummary) -> None:
    status = "✓ COMPLETED" if not summary.failed else "✗ FAILED"
    error  = f" — {summary.error}" if summary.error else ""

    print(f"\n  {'─'*56}")
    print(f"  Measurement Summary")
    print(f"  {'─'*56}")
    print(f"  Status          : {status}{error}")
    print(f"  Iterations      : {summary.count}")
    print(f"  Data            : {summary.total_bytes / 1e6:.2f} MB")
    print(f"  Transfer time   : {summary.total_elapsed_seconds:.4f} s")

    if summary.count:
        est = summary.estimate
        print(f"  Mean latency    : {summary.mean_elapsed_seconds:.6f} s")
        print(f"  Min / max       : {summary.min_elapsed_seconds:.6f} / {summary.max_elapsed_seconds:.6f} s")
        print(f"  Mean rate       : {summary.mean_rate_bps:.2f} bps")
        print(f"  Effective rate  : {summary.effective_rate_bps:.2f} bps")
        print(f"  Bandwidth used  : {est.bandwidth_bps:.2f} bps")
        print(f"  RTT used        : {est.rtt_seconds:.6f} s")
        print(f"  Window size     : {est.window_size_bits:.0f} bits")
        print(f"  BDP             : {est.bdp_bits:.2f} bits")
        print(f"  TCP throughput  : {est.tcp_throughput_bps:.2f} bps")
    print(f"  {'─'*56}\n")
