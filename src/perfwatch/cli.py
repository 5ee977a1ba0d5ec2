from __future__ import annotations

import argparse
from pathlib import Path

from perfwatch.analysis import evaluate_alerts
from perfwatch.config import CollectorConfig, RelayConfig
from perfwatch.logs import configure_logging
from perfwatch.metrics import distribution, gauges, heatmap, summarize
from perfwatch.relay import serve
from perfwatch.storage import KeyValueStore


def _run_relay(args: argparse.Namespace) -> None:
    config = RelayConfig(
        host=args.host,
        port=args.port,
        ingest_path=args.ingest_path,
        accumulator_size=args.accumulator_size,
        ping_interval_sec=args.ping_interval,
    )
    serve(config)


def _run_report(args: argparse.Namespace) -> None:
    store = KeyValueStore(Path(args.db))
    events = store.load_events(args.key)
    summary = summarize(events)
    dist = distribution(events)
    heat = heatmap(events)
    print(f"Retained events: {len(events)}")
    print(
        f"Requests: {summary.total_requests}  avg latency: {summary.avg_latency}ms  "
        f"failure rate: {summary.failure_rate:.2f}%  endpoints: {summary.active_endpoints}"
    )
    print("Percentiles: " + "  ".join(f"{name}={value}ms" for name, value in dist.percentiles.items()))
    for cell in sorted(heat.cells, key=lambda c: (c.endpoint, c.hour)):
        print(f"  {cell.endpoint:<40} {cell.hour:02d}h  n={cell.count:<5} avg={cell.avg_latency}ms")
    for alert in evaluate_alerts(gauges(events)):
        print(f"[{alert.severity.value}] {alert.title}: {alert.message}")


def main() -> None:
    parser = argparse.ArgumentParser(description="PerfWatch telemetry relay and reports")
    parser.add_argument("--verbose", action="store_true")
    parser.add_argument("--log-file", default=None)
    sub = parser.add_subparsers(dest="command", required=True)

    relay = sub.add_parser("relay", help="Run the ingestion relay")
    relay.add_argument("--host", default="127.0.0.1")
    relay.add_argument("--port", type=int, default=4000)
    relay.add_argument("--ingest-path", default="/api/metrics")
    relay.add_argument("--accumulator-size", type=int, default=10_000)
    relay.add_argument("--ping-interval", type=float, default=0.0)
    relay.set_defaults(handler=_run_relay)

    report = sub.add_parser("report", help="Summarise the locally retained window")
    report.add_argument("--db", default=".perfwatch/perfwatch.duckdb")
    report.add_argument("--key", default=CollectorConfig().storage_key)
    report.set_defaults(handler=_run_report)

    args = parser.parse_args()
    configure_logging(verbose=args.verbose, log_file=args.log_file)
    args.handler(args)


if __name__ == "__main__":
    main()
