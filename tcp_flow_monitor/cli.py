"""Command-line interface for the TCP flow monitor."""

import argparse
import logging
import signal
import sys
import threading
import time
from typing import Optional

from rich.console import Console
from rich.table import Table
from rich.live import Live
from rich.text import Text
from rich import box
from werkzeug.serving import make_server

from . import __version__
from .api import create_app
from .capture.engine import CaptureEngine
from .capture.interface_manager import InterfaceManager
from .config import MonitorConfig
from .errors import CaptureError, ConfigError, StoreError
from .logging_config import setup_logging
from .processing.ingestion import IngestionLoop
from .processing.query import FlowQuery
from .storage.eviction import EvictingFlowTable
from .storage.flow_table import FlowTable
from .storage.kv_store import KeyValueFlowTable
from .storage.memory_store import InMemoryFlowTable
from .storage.redis_store import RedisKeyValueStore

log = logging.getLogger(__name__)

console = Console()


def build_flow_table(config: MonitorConfig) -> FlowTable:
    """Create the configured flow table. Raises StoreError if redis is unreachable."""
    store_cfg = config.store
    if store_cfg.backend == "redis":
        store = RedisKeyValueStore.from_url(
            store_cfg.redis_url,
            timeout=store_cfg.timeout,
            key_prefix=store_cfg.key_prefix,
        )
        store.ping()
        table: FlowTable = KeyValueFlowTable(store)
        log.info("Using redis flow table at %s", store_cfg.redis_url)
    else:
        table = InMemoryFlowTable()

    tracking = config.tracking
    if tracking.max_flows or tracking.idle_timeout:
        table = EvictingFlowTable(
            table,
            max_flows=tracking.max_flows,
            idle_timeout=tracking.idle_timeout,
        )
    return table


def flows_table(query: FlowQuery, limit: int = 20, sort_by: str = "recent") -> Table:
    """Create Rich table with the current flows."""
    table = Table(
        title="TCP Flows",
        box=box.ROUNDED,
        show_header=True,
        header_style="bold cyan",
    )

    table.add_column("Peer (A)", style="bold")
    table.add_column("Local (Z)")
    table.add_column("A->Z bytes", justify="right")
    table.add_column("Z->A bytes", justify="right")
    table.add_column("A->Z SYN", justify="right")
    table.add_column("Z->A SYN", justify="right")
    table.add_column("Idle", justify="right")

    for state in query.top_flows(limit=limit, sort_by=sort_by):
        syn_style = "red" if max(state.a_to_z_syn_counter, state.z_to_a_syn_counter) >= 3 else "green"
        table.add_row(
            str(state.a_endpoint),
            str(state.z_endpoint),
            f"{state.a_to_z_bytes:,}",
            f"{state.z_to_a_bytes:,}",
            Text(str(state.a_to_z_syn_counter), style=syn_style),
            Text(str(state.z_to_a_syn_counter), style=syn_style),
            f"{state.idle_time:.0f}s",
        )

    return table


def start_api_server(query: FlowQuery, config: MonitorConfig) -> threading.Thread:
    """Serve the HTTP API on a daemon thread."""
    app = create_app(query, config.api)
    server = make_server(config.api.host, config.api.port, app, threaded=True)
    thread = threading.Thread(target=server.serve_forever, daemon=True, name="http-api")
    thread.start()
    log.info("HTTP API listening on http://%s:%d", config.api.host, config.api.port)
    return thread


def list_interfaces() -> None:
    """List available network interfaces."""
    mgr = InterfaceManager()

    table = Table(title="Available Network Interfaces", box=box.ROUNDED)
    table.add_column("Interface", style="bold cyan")
    table.add_column("IP Address")
    table.add_column("MAC Address")
    table.add_column("Status")

    for info in mgr.get_all():
        status = "UP" if info.is_up else "DOWN"
        status_style = "green" if info.is_up else "red"

        table.add_row(
            info.name,
            info.ipv4_address or "N/A",
            info.mac_address or "N/A",
            Text(status, style=status_style),
        )

    console.print(table)


def apply_overrides(config: MonitorConfig, args) -> MonitorConfig:
    """Command-line flags take precedence over the config file."""
    if args.interface:
        config.capture.interface = args.interface
    if args.local_ip:
        config.capture.local_ip = args.local_ip
    if args.filter:
        config.capture.address_filter = args.filter
    if args.bpf is not None:
        config.capture.bpf_filter = args.bpf
    if args.store:
        config.store.backend = args.store
    if args.redis_url:
        config.store.redis_url = args.redis_url
    if args.syn_mode:
        config.tracking.syn_count_mode = args.syn_mode
    if args.api_host:
        config.api.host = args.api_host
    if args.api_port:
        config.api.port = args.api_port
    if args.no_api:
        config.api.enabled = False
    if args.log_level:
        config.logging.level = args.log_level
    return config


def resolve_capture_target(config: MonitorConfig) -> None:
    """Fill in interface and local address when not configured."""
    mgr = InterfaceManager()

    if not config.capture.interface:
        active = mgr.get_active()
        if not active:
            raise ConfigError("No active interfaces found. Specify with --interface")
        config.capture.interface = active[0].name
        console.print(f"[yellow]Auto-detected interface: {config.capture.interface}[/yellow]")
    elif not mgr.exists(config.capture.interface):
        raise ConfigError(f"No such network interface: {config.capture.interface}")

    if not config.capture.local_ip:
        local_ip = mgr.get_local_ipv4(config.capture.interface)
        if not local_ip:
            raise ConfigError(
                f"Could not identify local IPv4 address for {config.capture.interface}"
            )
        config.capture.local_ip = local_ip
        log.debug("Found local IPv4 address: %s", local_ip)


def run_dashboard(loop: IngestionLoop, query: FlowQuery) -> None:
    """Show a live flow table while the loop runs in the background."""
    with Live(console=console, refresh_per_second=1) as live:
        while loop.is_running():
            stats = loop.get_stats()
            table = flows_table(query)
            table.caption = (
                f"v{__version__} | received {stats.received:,} | tracked {stats.tracked:,} | "
                f"flows {query.flow_count():,} | SYN alerts {stats.syn_alerts}"
            )
            live.update(table)
            time.sleep(1)


def run_monitor(args) -> int:
    """Run capture, ingestion and the HTTP API."""
    try:
        config = apply_overrides(MonitorConfig.load(args.config), args)
        config.validate()
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        return 1

    setup_logging(config.logging.level, config.logging.file)

    try:
        resolve_capture_target(config)
        table = build_flow_table(config)
    except (ConfigError, StoreError) as e:
        console.print(f"[red]Cannot start monitor: {e}[/red]")
        return 1

    engine = CaptureEngine(
        interface=config.capture.interface,
        bpf_filter=config.capture.bpf_filter,
        queue_size=config.capture.buffer_size,
        promiscuous=config.capture.promiscuous,
    )
    loop = IngestionLoop(
        source=engine,
        table=table,
        local_ip=config.capture.local_ip,
        address_filter=config.capture.address_filter,
        excluded_ports=config.excluded_ports(),
        syn_threshold=config.tracking.syn_threshold,
        syn_count_mode=config.tracking.syn_count_mode,
        sweep_interval=config.tracking.sweep_interval,
    )
    query = FlowQuery(table, loop)

    if config.api.enabled:
        try:
            start_api_server(query, config)
        except OSError as e:
            console.print(f"[red]Cannot start HTTP API: {e}[/red]")
            return 1

    def signal_handler(sig, frame):
        console.print("\n[yellow]Stopping capture...[/yellow]")
        loop.stop()

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    console.print(
        f"[green]Tracking TCP flows of {config.capture.local_ip} "
        f"on {config.capture.interface}[/green]"
    )

    try:
        if args.dashboard:
            loop.start()
            run_dashboard(loop, query)
            if loop.is_failed():
                raise loop.failure
        else:
            loop.run()
    except CaptureError as e:
        console.print(f"[red]Capture failed: {e}[/red]")
        return 1
    finally:
        table.close()

    stats = loop.get_stats()
    console.print(
        f"\n[bold]Tracked {stats.tracked:,} of {stats.received:,} datagrams "
        f"across {stats.flows_created:,} flows, {stats.syn_alerts} SYN alerts[/bold]"
    )
    return 0


def show_flows(args) -> int:
    """Print the flows held in a redis-backed table."""
    try:
        config = MonitorConfig.load(args.config)
    except ConfigError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    if args.redis_url:
        config.store.redis_url = args.redis_url

    store = RedisKeyValueStore.from_url(
        config.store.redis_url,
        timeout=config.store.timeout,
        key_prefix=config.store.key_prefix,
    )
    try:
        query = FlowQuery(KeyValueFlowTable(store))
        console.print(flows_table(query, limit=args.limit, sort_by=args.sort))
    except StoreError as e:
        console.print(f"[red]{e}[/red]")
        return 1
    finally:
        store.close()
    return 0


def main(argv: Optional[list] = None) -> None:
    """Main entry point."""
    parser = argparse.ArgumentParser(
        prog="tcp-flow-monitor",
        description="Track the local host's TCP conversations and flag unanswered SYNs.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    subparsers.add_parser("list", help="List available network interfaces")

    run_parser = subparsers.add_parser("run", help="Capture traffic and track TCP flows")
    run_parser.add_argument("-i", "--interface", help="Interface to capture on")
    run_parser.add_argument("--local-ip", help="Local IPv4 address (default: interface address)")
    run_parser.add_argument(
        "-f", "--filter",
        help="Only track packets whose addressing contains this substring ('*' = all)",
    )
    run_parser.add_argument("--bpf", help="BPF filter expression (default: 'tcp')")
    run_parser.add_argument("--store", choices=["memory", "redis"], help="Flow table backend")
    run_parser.add_argument("--redis-url", help="Redis URL for the redis backend")
    run_parser.add_argument(
        "--syn-mode",
        choices=["syn_only", "all_segments"],
        help="Which segments increment the SYN counters",
    )
    run_parser.add_argument("--api-host", help="HTTP API bind address")
    run_parser.add_argument("--api-port", type=int, help="HTTP API port")
    run_parser.add_argument("--no-api", action="store_true", help="Do not start the HTTP API")
    run_parser.add_argument("--dashboard", action="store_true", help="Show live flow table")
    run_parser.add_argument("-c", "--config", help="Path to configuration file")
    run_parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING...)")

    flows_parser = subparsers.add_parser("flows", help="Show flows stored in redis")
    flows_parser.add_argument("--redis-url", help="Redis URL")
    flows_parser.add_argument("-n", "--limit", type=int, default=20, help="Rows to show")
    flows_parser.add_argument(
        "--sort", choices=["bytes", "packets", "syn", "recent"], default="recent",
    )
    flows_parser.add_argument("-c", "--config", help="Path to configuration file")

    args = parser.parse_args(argv)

    if args.command == "list":
        list_interfaces()
    elif args.command == "run":
        sys.exit(run_monitor(args))
    elif args.command == "flows":
        sys.exit(show_flows(args))
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
