"""HomeGuard command-line interface."""
from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from homeguard.config import BT_LINKS, DeviceConfig, build_reconciler
from homeguard.errors import ConfigurationError
from homeguard.models.alarm_record import AlarmRecord
from homeguard.protocol import profile_names
from homeguard.reconciler import Reconciler
from homeguard.store import HistoryStore

MODE_CHOICES = ("away", "security", "safe")


def _config_from_args(args: argparse.Namespace) -> DeviceConfig:
	return DeviceConfig.from_env().with_overrides(
		variant=args.variant,
		base_url=args.base_url,
		bt_address=args.address,
		bt_channel=args.channel,
		bt_link=args.link,
		tcp_host=args.tcp_host,
		tcp_port=args.tcp_port,
		db_path=args.db,
		metrics_log=args.metrics_log,
		http_timeout=args.http_timeout,
		check_network=False if args.no_network_check else None,
	)


def _print_modes(console: Console, reconciler: Reconciler) -> None:
	table = Table(title=f"HomeGuard ({reconciler.profile.name} @ {reconciler.transport.endpoint})")
	table.add_column("MODE")
	table.add_column("STATE")
	for mode, active in reconciler.modes.items():
		table.add_row(mode.label, "armed" if active else "disarmed")
	console.print(table)
	console.print(f"connection: {reconciler.connection.status.value}")


def _print_history(console: Console, records: List[AlarmRecord]) -> None:
	if not records:
		console.print("No alarms recorded")
		return
	table = Table(title="Alarm history")
	for column in ("TIME", "TYPE", "REASON"):
		table.add_column(column)
	for record in records:
		table.add_row(record.timestamp.strftime("%Y-%m-%d %H:%M:%S"), record.type, record.reason)
	console.print(table)


async def _cmd_set(args: argparse.Namespace) -> int:
	console = Console()
	reconciler = build_reconciler(_config_from_args(args))
	state = await reconciler.start()
	try:
		accepted = await reconciler.toggle(args.mode, args.state == "on")
	finally:
		await reconciler.stop()
	if not accepted:
		notice = reconciler.last_notice
		console.print(f"[red]{notice.message if notice else 'mode change rejected'}[/red]")
		return 1
	if not reconciler.profile.confirm_toggles and not state.is_connected:
		console.print(f"[yellow]command not delivered: {state.reason or state.status.value}[/yellow]")
	if args.json:
		json.dump(reconciler.snapshot(), sys.stdout, indent=2)
		sys.stdout.write("\n")
		return 0
	_print_modes(console, reconciler)
	return 0


async def _cmd_status(args: argparse.Namespace) -> int:
	reconciler = build_reconciler(_config_from_args(args))
	await reconciler.start()
	await reconciler.stop()
	if args.json:
		snapshot = reconciler.snapshot()
		snapshot.pop("history", None)
		json.dump(snapshot, sys.stdout, indent=2)
		sys.stdout.write("\n")
		return 0
	_print_modes(Console(), reconciler)
	return 0


async def _cmd_listen(args: argparse.Namespace) -> int:
	console = Console()
	reconciler = build_reconciler(_config_from_args(args))

	def _echo(event: str, payload: Dict[str, Any]) -> None:
		record = payload.get("record")
		if event == "history" and record:
			console.print(f"[{record['type']}] {record['reason']}")
		elif event == "connection":
			console.print(f"connection: {payload.get('status')}")

	reconciler.subscribe(_echo)
	state = await reconciler.start()
	if not state.is_connected:
		return 1

	listener = asyncio.create_task(reconciler.listen())

	def _signal_handler(*_: Any) -> None:
		listener.cancel()

	loop = asyncio.get_running_loop()
	for sig in (signal.SIGINT, signal.SIGTERM):
		with contextlib.suppress(NotImplementedError):
			loop.add_signal_handler(sig, _signal_handler)

	try:
		await asyncio.wait_for(listener, timeout=args.runtime)
	except (asyncio.TimeoutError, asyncio.CancelledError):
		pass
	finally:
		await reconciler.stop()
	return 0


async def _cmd_history(args: argparse.Namespace) -> int:
	config = _config_from_args(args)
	if not config.profile.persist_history:
		raise ConfigurationError(f"the {config.profile.name} variant keeps its history in memory only; history applies to http")
	store = HistoryStore.open(config.db_path)
	try:
		if args.clear:
			store.save([])
			Console().print("History cleared")
			return 0
		records = store.load()
	finally:
		store.close()
	if args.json:
		json.dump([record.to_dict() for record in records], sys.stdout, indent=2)
		sys.stdout.write("\n")
		return 0
	_print_history(Console(), records)
	return 0


async def _cmd_scan(args: argparse.Namespace) -> int:
	from homeguard.ble import discover

	devices = await discover(timeout=args.timeout, uart_only=args.uart_only)
	data = [device.to_dict() for device in devices]
	if args.json:
		json.dump(data, sys.stdout, indent=2)
		sys.stdout.write("\n")
		return 0
	table = Table(title="Bluetooth devices", show_lines=False)
	for column in ("address", "name", "rssi", "uart"):
		table.add_column(column.upper())
	for entry in data:
		table.add_row(str(entry["address"]), str(entry["name"] or ""), str(entry["rssi"]), "yes" if entry["uart"] else "")
	Console().print(table)
	return 0


def _cmd_serve(args: argparse.Namespace) -> int:
	import uvicorn

	uvicorn.run("homeguard.api:app", host=args.host, port=args.port, log_level="debug" if args.verbose else "info")
	return 0


def _cmd_emulate(args: argparse.Namespace) -> int:
	from homeguard.emulator import main as run_emulator

	run_emulator(host=args.host, port=args.port)
	return 0


def _device_options() -> argparse.ArgumentParser:
	options = argparse.ArgumentParser(add_help=False)
	group = options.add_argument_group("device")
	group.add_argument("--variant", choices=profile_names(), help="Firmware variant (default: $HOMEGUARD_VARIANT or http)")
	group.add_argument("--base-url", help="Controller base URL for the http variant")
	group.add_argument("--address", help="Bluetooth MAC address for the bluetooth variant")
	group.add_argument("--channel", type=int, help="RFCOMM channel")
	group.add_argument("--link", choices=BT_LINKS, help="Bluetooth link type")
	group.add_argument("--tcp-host", help="Controller host for the tcp variant")
	group.add_argument("--tcp-port", type=int, help="Controller port for the tcp variant")
	group.add_argument("--db", help="SQLite file holding the alarm history")
	group.add_argument("--metrics-log", help="CSV file for transport diagnostics")
	group.add_argument("--http-timeout", type=float, help="HTTP request timeout seconds (default: none)")
	group.add_argument("--no-network-check", action="store_true", help="Skip the network availability check")
	return options


def _build_parser() -> argparse.ArgumentParser:
	parser = argparse.ArgumentParser(description="HomeGuard security controller utilities")
	parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
	sub = parser.add_subparsers(dest="command", required=True)
	device = _device_options()

	set_cmd = sub.add_parser("set", parents=[device], help="Arm or disarm a mode")
	set_cmd.add_argument("mode", choices=MODE_CHOICES)
	set_cmd.add_argument("state", choices=("on", "off"))
	set_cmd.add_argument("--json", action="store_true", help="Output JSON")
	set_cmd.set_defaults(handler=_cmd_set)

	status = sub.add_parser("status", parents=[device], help="Show mode flags and connection state")
	status.add_argument("--json", action="store_true", help="Output JSON")
	status.set_defaults(handler=_cmd_status)

	listen = sub.add_parser("listen", parents=[device], help="Print device messages as they arrive")
	listen.add_argument("--runtime", type=float, help="Stop after this many seconds")
	listen.set_defaults(handler=_cmd_listen)

	history = sub.add_parser("history", parents=[device], help="Show or clear the persisted alarm history (http variant)")
	history.add_argument("--clear", action="store_true", help="Remove every record")
	history.add_argument("--json", action="store_true", help="Output JSON")
	history.set_defaults(handler=_cmd_history)

	scan = sub.add_parser("scan", help="Discover nearby BLE devices")
	scan.add_argument("--timeout", type=float, default=6.0, help="Scan timeout in seconds")
	scan.add_argument("--uart-only", action="store_true", help="Only list devices advertising the UART service")
	scan.add_argument("--json", action="store_true", help="Output JSON")
	scan.set_defaults(handler=_cmd_scan)

	serve = sub.add_parser("serve", help="Run the HTTP API")
	serve.add_argument("--host", default="127.0.0.1")
	serve.add_argument("--port", type=int, default=8000)
	serve.set_defaults(handler=_cmd_serve)

	emulate = sub.add_parser("emulate", help="Run a controller emulator speaking the HTTP firmware API")
	emulate.add_argument("--host", default="127.0.0.1")
	emulate.add_argument("--port", type=int, default=8080)
	emulate.set_defaults(handler=_cmd_emulate)

	return parser


def main(argv: Optional[List[str]] = None) -> int:
	parser = _build_parser()
	args = parser.parse_args(argv)
	logging.basicConfig(
		level=logging.DEBUG if args.verbose else logging.INFO,
		format="%(message)s",
		handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
	)
	try:
		outcome = args.handler(args)
		if asyncio.iscoroutine(outcome):
			outcome = asyncio.run(outcome)
		return int(outcome)
	except ValueError as exc:
		# ConfigurationError, and modes the selected variant does not expose
		parser.error(str(exc))
	return 2


if __name__ == "__main__":
	sys.exit(main())
