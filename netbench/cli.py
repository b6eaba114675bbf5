#!/usr/bin/env python3
"""
netbench — CLI entry point

Subcommands
───────────
  serve   Start the transfer server
  run     Run a measurement session against a server

Usage examples
──────────────
  # Serve on port 7878
  netbench serve --port 7878

  # Serve one client, one exchange per connection
  netbench serve --max-connections 1 --max-requests 1

  # 100 × 1 MB round trips, write CSV + chart
  netbench run --host 192.168.1.50 --port 7878 \\
      --chunk-size 1000000 --iterations 100 \\
      --window-size 512000 --csv download_metrics.csv

Environment
───────────
  NETBENCH_HOST, NETBENCH_PORT supply the --host / --port defaults.
"""

import argparse
import logging
import os
import sys

from netbench.formulas import DEFAULT_WINDOW_SIZE_BITS
from netbench.protocol import CHUNK_SIZE, DEFAULT_PORT, MAX_REQUEST_SIZE

# Exit codes for `run`
EXIT_OK = 0
EXIT_TRANSPORT_ERROR = 1
EXIT_CONNECT_ERROR = 2
EXIT_USAGE_ERROR = 3


# ---------------------------------------------------------------------------
# Logging setup (called before anything else so imports log correctly)
# ---------------------------------------------------------------------------

def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    fmt   = "%(asctime)s  %(levelname)-8s  %(name)s — %(message)s"
    datefmt = "%H:%M:%S"
    logging.basicConfig(level=level, format=fmt, datefmt=datefmt)
    # Quiet noisy loggers unless verbose
    if not verbose:
        logging.getLogger("matplotlib").setLevel(logging.WARNING)
        logging.getLogger("PIL").setLevel(logging.WARNING)


def _env_port() -> int:
    raw = os.environ.get("NETBENCH_PORT")
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        raise SystemExit(f"NETBENCH_PORT must be an integer, got {raw!r}")


def _positive_int(raw: str) -> int:
    value = int(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return value


def _positive_float(raw: str) -> float:
    value = float(raw)
    if value <= 0:
        raise argparse.ArgumentTypeError(f"must be > 0, got {value}")
    return value


# ---------------------------------------------------------------------------
# Subcommand: serve
# ---------------------------------------------------------------------------

def cmd_serve(args: argparse.Namespace) -> int:
    """Start the transfer server."""
    from netbench.server import TransferServer

    server = TransferServer(
        host=args.host,
        port=args.port,
        max_request_size=args.max_request_size,
        max_requests=args.max_requests,
        max_connections=args.max_connections,
        send_buffer_size=args.send_buffer,
        timeout=args.timeout,
    )

    server.start()   # blocks
    return 0


# ---------------------------------------------------------------------------
# Subcommand: run
# ---------------------------------------------------------------------------

def cmd_run(args: argparse.Namespace) -> int:
    """Run a measurement session and report the results."""
    from netbench.client import TransferClient
    from netbench.metrics import summarize_run
    from netbench.results import plot_latency_and_rate, print_summary, write_csv

    print(f"\n  netbench client")
    print(f"  Server     : {args.host}:{args.port}")
    print(f"  Chunk size : {args.chunk_size} bytes")
    print(f"  Iterations : {args.iterations}\n")

    def _progress(record) -> None:
        print(
            f"  Chunk {record.sequence_number + 1}: "
            f"Download Time: {record.elapsed_time_seconds:.6f}s, "
            f"Effective Data Rate: {record.effective_rate_bps:.2f} bps"
        )

    try:
        client = TransferClient(
            host=args.host,
            port=args.port,
            chunk_size=args.chunk_size,
            iterations=args.iterations,
            timeout=args.timeout,
            on_record=None if args.quiet else _progress,
        )
    except ValueError as exc:
        print(f"\n  Error: {exc}", file=sys.stderr)
        return EXIT_USAGE_ERROR

    try:
        run = client.run()
    except ConnectionError as exc:
        print(f"\n  Error: {exc}", file=sys.stderr)
        return EXIT_CONNECT_ERROR

    summary = summarize_run(
        run,
        bandwidth_bps=args.bandwidth,
        rtt_seconds=args.rtt,
        window_size_bits=args.window_size,
    )

    if args.csv:
        path = write_csv(summary.records, args.csv)
        print(f"  Download metrics saved to {path}")

    if args.chart and summary.count:
        path = plot_latency_and_rate(summary.records, args.chart)
        print(f"  Latency and data rate chart saved as {path}")

    print_summary(summary)
    return EXIT_OK if run.completed else EXIT_TRANSPORT_ERROR


# ---------------------------------------------------------------------------
# Argument parser
# ---------------------------------------------------------------------------

def build_parser() -> argparse.ArgumentParser:
    default_host = os.environ.get("NETBENCH_HOST")
    default_port = _env_port()

    parser = argparse.ArgumentParser(
        prog="netbench",
        description="netbench — point-to-point TCP latency and throughput measurement",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )

    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    # ── serve ──────────────────────────────────────────────────────────
    p_serve = sub.add_parser(
        "serve",
        help="Start the transfer server",
        description="Answer size requests with zero-filled payloads.",
    )
    p_serve.add_argument(
        "--host", default=default_host or "0.0.0.0", metavar="HOST",
        help="Interface to bind (default: 0.0.0.0)",
    )
    p_serve.add_argument(
        "--port", type=int, default=default_port, metavar="PORT",
        help=f"TCP port to listen on (default: {DEFAULT_PORT})",
    )
    p_serve.add_argument(
        "--max-request-size", type=_positive_int, default=MAX_REQUEST_SIZE, metavar="BYTES",
        help="Largest request honoured; larger ones close the connection",
    )
    p_serve.add_argument(
        "--max-requests", type=_positive_int, default=None, metavar="N",
        help="Close each connection after N exchanges (default: unlimited)",
    )
    p_serve.add_argument(
        "--max-connections", type=_positive_int, default=None, metavar="N",
        help="Exit after serving N connections (default: run until stopped)",
    )
    p_serve.add_argument(
        "--send-buffer", type=_positive_int, default=1_000_000, metavar="BYTES",
        help="SO_SNDBUF for accepted connections (default: 1000000)",
    )
    p_serve.add_argument(
        "--timeout", type=_positive_float, default=120.0, metavar="SECS",
        help="Close connections idle for this long (default: 120)",
    )

    # ── run ────────────────────────────────────────────────────────────
    p_run = sub.add_parser(
        "run",
        help="Measure latency and data rate against a server",
        description="Request a fixed-size payload repeatedly and time each round trip.",
    )
    p_run.add_argument(
        "--host", default=default_host or "127.0.0.1", metavar="HOST",
        help="Server hostname or IP (default: 127.0.0.1)",
    )
    p_run.add_argument(
        "--port", type=int, default=default_port, metavar="PORT",
        help=f"Server port (default: {DEFAULT_PORT})",
    )
    p_run.add_argument(
        "--chunk-size", type=_positive_int, default=CHUNK_SIZE, metavar="BYTES",
        help=f"Bytes requested per iteration (default: {CHUNK_SIZE})",
    )
    p_run.add_argument(
        "--iterations", "-n", type=_positive_int, default=100, metavar="N",
        help="Number of round trips (default: 100)",
    )
    p_run.add_argument(
        "--timeout", type=_positive_float, default=30.0, metavar="SECS",
        help="Deadline for a single round trip (default: 30)",
    )
    p_run.add_argument(
        "--bandwidth", type=_positive_float, default=None, metavar="BPS",
        help="Bandwidth for the BDP estimate (default: measured effective rate)",
    )
    p_run.add_argument(
        "--rtt", type=_positive_float, default=None, metavar="SECS",
        help="RTT for the estimates (default: measured mean latency)",
    )
    p_run.add_argument(
        "--window-size", type=_positive_float, default=DEFAULT_WINDOW_SIZE_BITS, metavar="BITS",
        help="TCP window size in bits (default: 512000)",
    )
    p_run.add_argument(
        "--csv", default="download_metrics.csv", metavar="FILE",
        help="CSV output path (default: download_metrics.csv)",
    )
    p_run.add_argument(
        "--chart", default="latency_data_rate.png", metavar="FILE",
        help="Chart output path (default: latency_data_rate.png)",
    )
    p_run.add_argument(
        "--no-chart", dest="chart", action="store_const", const=None,
        help="Skip rendering the chart",
    )
    p_run.add_argument(
        "--quiet", "-q", action="store_true",
        help="Do not print a line per iteration",
    )

    return parser


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main(argv=None) -> None:
    parser = build_parser()
    args   = parser.parse_args(argv)
    _setup_logging(args.verbose)

    dispatch = {
        "serve": cmd_serve,
        "run":   cmd_run,
    }

    handler = dispatch.get(args.command)
    if handler is None:
        parser.print_help()
        sys.exit(1)

    sys.exit(handler(args))


if __name__ == "__main__":
    main()
