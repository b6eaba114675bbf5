import pytest

from netbench.cli import (
    EXIT_CONNECT_ERROR,
    EXIT_OK,
    EXIT_TRANSPORT_ERROR,
    EXIT_USAGE_ERROR,
    build_parser,
    main,
)


def test_run_defaults():
    args = build_parser().parse_args(["run"])
    assert args.host == "127.0.0.1"
    assert args.port == 7878
    assert args.chunk_size == 1_000_000
    assert args.iterations == 100
    assert args.window_size == 512_000
    assert args.chart == "latency_data_rate.png"
    assert args.bandwidth is None and args.rtt is None


def test_no_chart_flag():
    args = build_parser().parse_args(["run", "--no-chart"])
    assert args.chart is None


def test_env_supplies_host_and_port(monkeypatch):
    monkeypatch.setenv("NETBENCH_HOST", "10.0.0.5")
    monkeypatch.setenv("NETBENCH_PORT", "9100")
    args = build_parser().parse_args(["serve"])
    assert (args.host, args.port) == ("10.0.0.5", 9100)


@pytest.mark.parametrize("flag", ["--chunk-size", "--iterations"])
def test_non_positive_values_rejected(flag):
    with pytest.raises(SystemExit):
        build_parser().parse_args(["run", flag, "0"])


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def _run(argv):
    with pytest.raises(SystemExit) as exc_info:
        main(argv)
    return exc_info.value.code


def test_run_end_to_end_writes_csv(server, tmp_path, capsys):
    csv_path = tmp_path / "metrics.csv"
    code = _run([
        "run", "--host", "127.0.0.1", "--port", str(server.port),
        "--chunk-size", "2048", "-n", "5",
        "--csv", str(csv_path), "--chart", str(tmp_path / "chart.png"), "-q",
    ])

    assert code == EXIT_OK
    assert len(csv_path.read_text().splitlines()) == 6
    assert (tmp_path / "chart.png").exists()
    assert "COMPLETED" in capsys.readouterr().out


def test_run_partial_failure_exit_code(make_server, tmp_path):
    server = make_server(max_requests=2)
    csv_path = tmp_path / "metrics.csv"
    code = _run([
        "run", "--port", str(server.port), "--chunk-size", "512", "-n", "4",
        "--csv", str(csv_path), "--no-chart", "-q",
    ])

    assert code == EXIT_TRANSPORT_ERROR
    assert len(csv_path.read_text().splitlines()) == 3


def test_run_connect_failure_exit_code(unused_port, tmp_path):
    code = _run([
        "run", "--port", str(unused_port), "-n", "1",
        "--csv", str(tmp_path / "m.csv"), "--no-chart",
    ])
    assert code == EXIT_CONNECT_ERROR


def test_run_chunk_size_beyond_size_field_exit_code(unused_port, tmp_path, capsys):
    code = _run([
        "run", "--port", str(unused_port), "--chunk-size", str(2 ** 64), "-n", "1",
        "--csv", str(tmp_path / "m.csv"), "--no-chart",
    ])
    assert code == EXIT_USAGE_ERROR
    assert "does not fit the size field" in capsys.readouterr().err
    assert not (tmp_path / "m.csv").exists()
