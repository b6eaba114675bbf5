import math

import pytest

from netbench.formulas import (
    DEFAULT_WINDOW_SIZE_BITS,
    calculate_bdp,
    calculate_effective_data_rate,
    calculate_tcp_throughput,
    estimate_network,
)


@pytest.mark.parametrize("bandwidth,rtt", [(1e6, 0.2), (100e6, 0.001), (8.0, 3.5)])
def test_bdp_is_bandwidth_times_rtt(bandwidth, rtt):
    assert calculate_bdp(bandwidth, rtt) == bandwidth * rtt


def test_bdp_scales_linearly_in_each_argument():
    base = calculate_bdp(10e6, 0.05)
    assert calculate_bdp(30e6, 0.05) == pytest.approx(3 * base)
    assert calculate_bdp(10e6, 0.15) == pytest.approx(3 * base)


def test_effective_data_rate():
    assert calculate_effective_data_rate(8_000_000, 2.0) == 4_000_000.0


@pytest.mark.parametrize("zero", [0, 0.0, -0.0])
def test_effective_data_rate_zero_time_raises(zero):
    with pytest.raises(ArithmeticError):
        calculate_effective_data_rate(1000.0, zero)


def test_tcp_throughput_concrete_value():
    assert calculate_tcp_throughput(window_size_bits=65536 * 8, rtt_seconds=0.05) == 10_485_760


def test_tcp_throughput_zero_rtt_raises():
    with pytest.raises(ZeroDivisionError):
        calculate_tcp_throughput(65536 * 8, 0.0)


def test_results_are_finite():
    value = calculate_effective_data_rate(1.0, 1e-12)
    assert math.isfinite(value)


def test_estimate_network_combines_formulas():
    est = estimate_network(bandwidth_bps=50e6, rtt_seconds=0.02, window_size_bits=65536 * 8)
    assert est.bdp_bits == 50e6 * 0.02
    assert est.tcp_throughput_bps == (65536 * 8) / 0.02
    assert est.to_dict()["window_size_bits"] == 65536 * 8


def test_estimate_network_default_window():
    est = estimate_network(1e6, 0.2)
    assert est.window_size_bits == DEFAULT_WINDOW_SIZE_BITS == 512_000
    assert est.tcp_throughput_bps == pytest.approx(2_560_000)


def test_estimate_network_zero_rtt_raises():
    with pytest.raises(ZeroDivisionError):
        estimate_network(1e6, 0)
