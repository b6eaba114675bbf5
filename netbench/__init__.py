"""
netbench — point-to-point TCP latency and throughput measurement.

Modules
───────
  formulas  — BDP, effective data rate, TCP throughput (pure functions)
  protocol  — Wire format (8-byte size request), exact reads, error types
  server    — TransferServer: thread-per-connection payload server
  client    — TransferClient: sequential timed request/response loop
  metrics   — MeasurementRecord, MeasurementAggregator, SessionSummary
  results   — CSV writer, latency / data-rate chart, console summary
  cli       — argparse CLI: serve / run subcommands

The core (formulas, protocol, server, client, metrics) has no third-party
dependencies; only results imports pandas and matplotlib.
"""

__version__ = "1.0.0"
