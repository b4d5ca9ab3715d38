"""Bluetooth serial over the Nordic UART Service, built on bleak."""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from bleak import BleakClient, BleakScanner

from homeguard.errors import ConnectionFailure
from homeguard.transport import StreamTransport

logger = logging.getLogger(__name__)

NUS_SERVICE_UUID = "6e400001-b5a3-f393-e0a9-e50e24dcca9e"
# Written by the central (us), notified by the peripheral (the controller).
NUS_RX_CHAR_UUID = "6e400002-b5a3-f393-e0a9-e50e24dcca9e"
NUS_TX_CHAR_UUID = "6e400003-b5a3-f393-e0a9-e50e24dcca9e"

ClientFactory = Callable[..., Any]


class BleUartTransport(StreamTransport):
	"""Stream transport for controllers that expose a BLE UART instead of RFCOMM."""

	def __init__(
		self,
		address: str,
		*,
		adapter: Optional[str] = None,
		rx_uuid: str = NUS_RX_CHAR_UUID,
		tx_uuid: str = NUS_TX_CHAR_UUID,
		client_factory: Optional[ClientFactory] = None,
		**kwargs: Any,
	) -> None:
		super().__init__(**kwargs)
		self.address = address
		self.adapter = adapter
		self.rx_uuid = rx_uuid
		self.tx_uuid = tx_uuid
		self._client_factory: ClientFactory = client_factory or BleakClient
		self._client: Any = None
		self._inbound: Optional[asyncio.Queue[Optional[bytes]]] = None

	@property
	def endpoint(self) -> str:
		return self.address

	async def _open(self) -> None:
		kwargs: Dict[str, Any] = {"disconnected_callback": self._on_disconnected}
		if self.adapter:
			kwargs["adapter"] = self.adapter
		client = self._client_factory(self.address, **kwargs)
		await client.connect()
		self._inbound = asyncio.Queue()
		try:
			await client.start_notify(self.tx_uuid, self._on_notify)
		except Exception:
			await client.disconnect()
			self._inbound = None
			raise
		self._client = client

	async def _write(self, payload: bytes) -> None:
		if self._client is None:
			raise ConnectionFailure("BLE client is gone")
		await self._client.write_gatt_char(self.rx_uuid, payload, response=False)

	async def _chunks(self) -> AsyncIterator[bytes]:
		queue = self._inbound
		if queue is None:
			return
		while True:
			chunk = await queue.get()
			if chunk is None:
				return
			yield chunk

	async def _release(self) -> None:
		client = self._client
		queue = self._inbound
		self._client = None
		self._inbound = None
		if queue is not None:
			queue.put_nowait(None)
		if client is None:
			return
		try:
			await client.disconnect()
		except Exception as exc:
			logger.warning("Disconnect encountered error for %s: %s", self.address, exc)

	def _on_notify(self, _sender: Any, data: bytearray) -> None:
		if self._inbound is not None:
			self._inbound.put_nowait(bytes(data))

	def _on_disconnected(self, _client: Any) -> None:
		logger.info("BLE link to %s dropped", self.address)
		if self._inbound is not None:
			self._inbound.put_nowait(None)


@dataclass(slots=True)
class DiscoveredDevice:
	address: str
	name: Optional[str]
	rssi: Optional[int]
	uart: bool = False

	def to_dict(self) -> Dict[str, Any]:
		return {"address": self.address, "name": self.name, "rssi": self.rssi, "uart": self.uart}


async def discover(timeout: float = 6.0, *, uart_only: bool = False) -> List[DiscoveredDevice]:
	"""Scan for nearby BLE devices, flagging those that advertise the UART service."""
	results = await BleakScanner.discover(timeout=timeout, return_adv=True)
	devices: List[DiscoveredDevice] = []
	for device, advertisement in results.values():
		uuids = [str(uuid).lower() for uuid in (getattr(advertisement, "service_uuids", None) or ())]
		uart = NUS_SERVICE_UUID in uuids
		if uart_only and not uart:
			continue
		devices.append(
			DiscoveredDevice(
				address=device.address,
				name=getattr(device, "name", None) or getattr(advertisement, "local_name", None),
				rssi=getattr(advertisement, "rssi", getattr(device, "rssi", None)),
				uart=uart,
			)
		)
	devices.sort(key=lambda item: item.rssi if item.rssi is not None else -999, reverse=True)
	return devices


__all__ = [
	"BleUartTransport",
	"DiscoveredDevice",
	"NUS_RX_CHAR_UUID",
	"NUS_SERVICE_UUID",
	"NUS_TX_CHAR_UUID",
	"discover",
]
