"""
netbench/formulas.py

Network performance formulas.

All functions are pure and operate on plain floats:

    BDP              = bandwidth_bps * rtt_seconds          (bits in flight)
    effective rate   = total_data_bits / total_time_seconds (bits / s)
    TCP throughput   = window_size_bits / rtt_seconds       (bits / s)

A zero duration or zero RTT raises ZeroDivisionError. Nothing here returns
infinity or NaN in place of an error.
"""

from dataclasses import dataclass

# Assumed TCP window when the caller does not supply one (64 kB, in bits)
DEFAULT_WINDOW_SIZE_BITS = 64_000 * 8


def calculate_bdp(bandwidth_bps: float, rtt_seconds: float) -> float:
    """
    Bandwidth-Delay Product: the maximum amount of data (in bits) that can
    be in transit on the link.

    Args:
        bandwidth_bps: Link bandwidth in bits per second
        rtt_seconds:   Round-trip time in seconds

    Returns:
        float: bits in transit
    """
    return bandwidth_bps * rtt_seconds


def calculate_effective_data_rate(total_data_bits: float, total_time_seconds: float) -> float:
    """
    Average data rate achieved over a transfer.

    Raises:
        ZeroDivisionError: if total_time_seconds is zero
    """
    if total_time_seconds == 0:
        raise ZeroDivisionError("effective data rate undefined for a zero-duration transfer")
    return total_data_bits / total_time_seconds


def calculate_tcp_throughput(window_size_bits: float, rtt_seconds: float) -> float:
    """
    Upper bound on TCP throughput for a given window and RTT.

    Raises:
        ZeroDivisionError: if rtt_seconds is zero
    """
    if rtt_seconds == 0:
        raise ZeroDivisionError("TCP throughput undefined for a zero RTT")
    return window_size_bits / rtt_seconds


@dataclass(frozen=True)
class NetworkEstimate:
    """Derived link bounds for one (bandwidth, RTT, window) triple."""
    bandwidth_bps: float
    rtt_seconds: float
    window_size_bits: float
    bdp_bits: float
    tcp_throughput_bps: float

    def to_dict(self) -> dict:
        return {
            "bandwidth_bps":      self.bandwidth_bps,
            "rtt_seconds":        self.rtt_seconds,
            "window_size_bits":   self.window_size_bits,
            "bdp_bits":           self.bdp_bits,
            "tcp_throughput_bps": self.tcp_throughput_bps,
        }


def estimate_network(
    bandwidth_bps: float,
    rtt_seconds: float,
    window_size_bits: float = DEFAULT_WINDOW_SIZE_BITS,
) -> NetworkEstimate:
    return NetworkEstimate(
        bandwidth_bps=bandwidth_bps,
        rtt_seconds=rtt_seconds,
        window_size_bits=window_size_bits,
        bdp_bits=calculate_bdp(bandwidth_bps, rtt_seconds),
        tcp_throughput_bps=calculate_tcp_throughput(window_size_bits, rtt_seconds),
    )
