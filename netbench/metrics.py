"""
netbench/metrics.py

Per-iteration measurement records and their aggregation.

MeasurementRecord:
    One iteration's result. Built by the client right after the payload
    has been fully read, never changed afterwards:
        effective_rate_bps = bytes_transferred * 8 / elapsed_time_seconds

MeasurementAggregator:
    Collects the records of one client run, in order, and produces a
    SessionSummary: totals, means, extremes and the BDP / TCP throughput
    estimate for the session.

    Sequence numbers must match positions. A gap (e.g. from a run that
    was aborted and resumed) or a reordering raises ValueError instead of
    being folded silently into the statistics.
"""

import logging
import math
from dataclasses import dataclass
from typing import Iterable, Optional

from netbench.formulas import (
    DEFAULT_WINDOW_SIZE_BITS,
    NetworkEstimate,
    calculate_effective_data_rate,
    estimate_network,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MeasurementRecord:
    sequence_number: int
    bytes_transferred: int
    elapsed_time_seconds: float
    effective_rate_bps: float

    def __post_init__(self) -> None:
        if self.sequence_number < 0:
            raise ValueError(f"sequence_number must be >= 0, got {self.sequence_number}")
        if self.elapsed_time_seconds <= 0:
            raise ValueError(
                f"elapsed_time_seconds must be > 0, got {self.elapsed_time_seconds}"
            )
        if self.bytes_transferred < 0:
            raise ValueError(f"bytes_transferred must be >= 0, got {self.bytes_transferred}")
        expected = self.bytes_transferred * 8 / self.elapsed_time_seconds
        if not math.isclose(self.effective_rate_bps, expected):
            raise ValueError(
                f"effective_rate_bps {self.effective_rate_bps} does not match "
                f"bytes_transferred * 8 / elapsed_time_seconds = {expected}"
            )

    @classmethod
    def from_transfer(
        cls,
        sequence_number: int,
        bytes_transferred: int,
        elapsed_time_seconds: float,
    ) -> "MeasurementRecord":
        """Build a record, deriving the rate from the byte count and duration."""
        rate = calculate_effective_data_rate(bytes_transferred * 8, elapsed_time_seconds)
        return cls(
            sequence_number=sequence_number,
            bytes_transferred=bytes_transferred,
            elapsed_time_seconds=elapsed_time_seconds,
            effective_rate_bps=rate,
        )


@dataclass(frozen=True)
class SessionSummary:
    """
    Read-only snapshot of one client run, handed to the result sinks.

    Statistics that need at least one record (means, extremes, rates and
    the estimate) are None for an empty session.
    """
    records: tuple
    count: int
    total_bytes: int
    total_elapsed_seconds: float
    mean_elapsed_seconds: Optional[float] = None
    mean_rate_bps: Optional[float] = None
    effective_rate_bps: Optional[float] = None
    min_elapsed_seconds: Optional[float] = None
    max_elapsed_seconds: Optional[float] = None
    estimate: Optional[NetworkEstimate] = None
    error: Optional[str] = None

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict:
        return {
            "count":                 self.count,
            "total_bytes":           self.total_bytes,
            "total_elapsed_seconds": self.total_elapsed_seconds,
            "mean_elapsed_seconds":  self.mean_elapsed_seconds,
            "mean_rate_bps":         self.mean_rate_bps,
            "effective_rate_bps":    self.effective_rate_bps,
            "min_elapsed_seconds":   self.min_elapsed_seconds,
            "max_elapsed_seconds":   self.max_elapsed_seconds,
            "estimate":              self.estimate.to_dict() if self.estimate else None,
            "error":                 self.error,
        }


class MeasurementAggregator:
    """
    Accumulates the MeasurementRecords of one run.

    Usage:
        agg = MeasurementAggregator()
        agg.extend(run.records)
        summary = agg.summarize(window_size_bits=65536 * 8)
    """

    def __init__(self, records: Iterable[MeasurementRecord] = ()) -> None:
        self._records: list[MeasurementRecord] = []
        self.extend(records)

    def add(self, record: MeasurementRecord) -> None:
        expected = len(self._records)
        if record.sequence_number != expected:
            raise ValueError(
                f"Out-of-sequence record: got {record.sequence_number}, expected {expected}"
            )
        self._records.append(record)

    def extend(self, records: Iterable[MeasurementRecord]) -> None:
        for record in records:
            self.add(record)

    def __len__(self) -> int:
        return len(self._records)

    @property
    def records(self) -> tuple:
        return tuple(self._records)

    def summarize(
        self,
        bandwidth_bps: Optional[float] = None,
        rtt_seconds: Optional[float] = None,
        window_size_bits: float = DEFAULT_WINDOW_SIZE_BITS,
        error: Optional[object] = None,
    ) -> SessionSummary:
        """
        Compute the session statistics.

        Args:
            bandwidth_bps:    link bandwidth for the BDP; defaults to the
                              session's effective data rate
            rtt_seconds:      RTT for BDP / TCP throughput; defaults to the
                              mean per-iteration elapsed time
            window_size_bits: TCP window for the throughput bound
            error:            failure that ended the run, if any

        Raises:
            ZeroDivisionError: if an explicit rtt_seconds of 0 is supplied
        """
        records = self.records
        count = len(records)
        total_bytes = sum(r.bytes_transferred for r in records)
        total_elapsed = sum(r.elapsed_time_seconds for r in records)
        error_text = str(error) if error is not None else None

        if count == 0:
            logger.debug("Summarizing empty session")
            return SessionSummary(
                records=records,
                count=0,
                total_bytes=0,
                total_elapsed_seconds=0.0,
                error=error_text,
            )

        latencies = [r.elapsed_time_seconds for r in records]
        mean_elapsed = total_elapsed / count
        mean_rate = sum(r.effective_rate_bps for r in records) / count
        effective = calculate_effective_data_rate(total_bytes * 8, total_elapsed)

        estimate = estimate_network(
            bandwidth_bps=effective if bandwidth_bps is None else bandwidth_bps,
            rtt_seconds=mean_elapsed if rtt_seconds is None else rtt_seconds,
            window_size_bits=window_size_bits,
        )

        summary = SessionSummary(
            records=records,
            count=count,
            total_bytes=total_bytes,
            total_elapsed_seconds=total_elapsed,
            mean_elapsed_seconds=mean_elapsed,
            mean_rate_bps=mean_rate,
            effective_rate_bps=effective,
            min_elapsed_seconds=min(latencies),
            max_elapsed_seconds=max(latencies),
            estimate=estimate,
            error=error_text,
        )
        logger.debug("Session summary: %s", summary.to_dict())
        return summary


def summarize_run(run, **kwargs) -> SessionSummary:
    """Aggregate a TransferRun, carrying its error (if any) into the summary."""
    agg = MeasurementAggregator(run.records)
    return agg.summarize(error=run.error, **kwargs)
