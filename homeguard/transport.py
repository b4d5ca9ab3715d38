"""Push transports exchanging newline-terminated text with the controller."""
from __future__ import annotations

import asyncio
import logging
import socket
from typing import Any, AsyncIterator, Dict, Mapping, Optional, Tuple

from homeguard.errors import ConnectionFailure, SendDropped
from homeguard.metrics import MetricsLogger
from homeguard.models.connection_state import ConnectionState
from homeguard.models.mode import Mode
from homeguard.protocol import LineDecoder, command_for, encode_command

logger = logging.getLogger(__name__)

READ_CHUNK = 1024


class StreamTransport:
	"""One connection to the controller carrying text commands and messages.

	``connect`` makes a single attempt and reports the outcome as a
	:class:`ConnectionState` instead of raising. Commands sent without a live
	connection are dropped. Nothing is retried or queued, and a closed stream
	stays closed until ``connect`` is called again.
	"""

	def __init__(
		self,
		*,
		metrics: Optional[MetricsLogger] = None,
		metadata: Optional[Mapping[str, Any]] = None,
	) -> None:
		self._state = ConnectionState.disconnected()
		self._metrics = metrics
		self._metadata = dict(metadata or {})

	@property
	def endpoint(self) -> str:
		raise NotImplementedError

	@property
	def state(self) -> ConnectionState:
		return self._state

	@property
	def connected(self) -> bool:
		return self._state.is_connected

	# ------------------------------------------------------------------
	# Lifecycle
	# ------------------------------------------------------------------
	async def connect(self) -> ConnectionState:
		if self.connected:
			return self._state
		self._state = ConnectionState.connecting()
		try:
			await self._open()
		except Exception as exc:
			reason = str(exc) or type(exc).__name__
			self._state = ConnectionState.failed(reason)
			self._metrics_log("connect", status="error", message=reason)
			logger.exception("Connection attempt failed for %s", self.endpoint)
			return self._state

		self._state = ConnectionState.connected()
		self._metrics_log("connect", status="ok")
		logger.info("Connected to %s", self.endpoint)
		return self._state

	async def close(self) -> None:
		was_connected = self.connected
		await self._release()
		self._state = ConnectionState.disconnected()
		if was_connected:
			self._metrics_log("disconnect", status="ok")
			logger.info("Closed connection to %s", self.endpoint)

	async def __aenter__(self) -> "StreamTransport":
		await self.connect()
		return self

	async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
		await self.close()

	# ------------------------------------------------------------------
	# Outbound
	# ------------------------------------------------------------------
	async def send_command(self, text: str, *, strict: bool = False) -> bool:
		"""Write one newline-terminated command. Returns False when nothing was written.

		With ``strict`` a send without a live connection raises :class:`SendDropped`
		instead of being dropped quietly.
		"""
		if not self.connected:
			logger.debug("Dropping %r: no live connection to %s", text, self.endpoint)
			self._metrics_log("send_dropped", status="dropped", extra={"command": text})
			if strict:
				raise SendDropped(f"no live connection to {self.endpoint}")
			return False

		payload = encode_command(text)
		try:
			await self._write(payload)
		except Exception as exc:
			reason = str(exc) or type(exc).__name__
			logger.warning("Write to %s failed: %s", self.endpoint, reason)
			self._metrics_log("send", status="error", message=reason, extra={"command": text})
			await self._release()
			self._state = ConnectionState.failed(reason)
			return False

		self._metrics_log("send", status="ok", extra={"command": text, "len": len(payload)})
		return True

	async def set_mode(self, mode: Mode, enabled: bool) -> bool:
		return await self.send_command(command_for(mode, enabled))

	# ------------------------------------------------------------------
	# Inbound
	# ------------------------------------------------------------------
	async def messages(self) -> AsyncIterator[str]:
		"""Yield decoded lines until the stream ends."""
		if not self.connected:
			return
		decoder = LineDecoder()
		failure: Optional[str] = None
		try:
			async for chunk in self._chunks():
				for line in decoder.feed(chunk):
					self._metrics_log("receive", status="ok", message=line)
					yield line
		except Exception as exc:
			failure = str(exc) or type(exc).__name__
			logger.warning("Inbound stream from %s terminated: %s", self.endpoint, failure)

		for line in decoder.flush():
			self._metrics_log("receive", status="ok", message=line)
			yield line

		if self.connected:
			await self._release()
			self._state = ConnectionState.failed(failure) if failure else ConnectionState.disconnected()
			self._metrics_log("disconnect", status="error" if failure else "closed", message=failure)
			logger.info("Stream from %s ended", self.endpoint)

	# ------------------------------------------------------------------
	# Link specific hooks
	# ------------------------------------------------------------------
	async def _open(self) -> None:
		raise NotImplementedError

	async def _write(self, payload: bytes) -> None:
		raise NotImplementedError

	def _chunks(self) -> AsyncIterator[bytes]:
		raise NotImplementedError

	async def _release(self) -> None:
		raise NotImplementedError

	def _metrics_log(
		self,
		event: str,
		*,
		status: Optional[str] = None,
		message: Optional[str] = None,
		extra: Optional[Dict[str, Any]] = None,
	) -> None:
		if not self._metrics:
			return
		payload: Dict[str, Any] = {"endpoint": self.endpoint, **self._metadata}
		if extra:
			payload.update(extra)
		try:
			self._metrics.log(event, status=status, message=message, extra=payload)
		except Exception:  # pragma: no cover - diagnostics must not break the link
			logger.debug("Metrics logging failed for %s", event, exc_info=True)


class _SocketTransport(StreamTransport):
	"""Stream transport over an asyncio reader/writer pair."""

	def __init__(self, **kwargs: Any) -> None:
		super().__init__(**kwargs)
		self._reader: Optional[asyncio.StreamReader] = None
		self._writer: Optional[asyncio.StreamWriter] = None

	async def _open_streams(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
		raise NotImplementedError

	async def _open(self) -> None:
		self._reader, self._writer = await self._open_streams()

	async def _write(self, payload: bytes) -> None:
		if self._writer is None:
			raise ConnectionFailure("stream writer is gone")
		self._writer.write(payload)
		await self._writer.drain()

	async def _chunks(self) -> AsyncIterator[bytes]:
		reader = self._reader
		if reader is None:
			return
		while True:
			chunk = await reader.read(READ_CHUNK)
			if not chunk:
				return
			yield chunk

	async def _release(self) -> None:
		writer = self._writer
		self._reader = None
		self._writer = None
		if writer is None:
			return
		writer.close()
		try:
			await writer.wait_closed()
		except (OSError, ConnectionError) as exc:
			logger.debug("Closing %s raised %s", self.endpoint, exc)


class TcpTransport(_SocketTransport):
	"""Raw TCP socket to the controller's command port."""

	def __init__(self, host: str, port: int, **kwargs: Any) -> None:
		super().__init__(**kwargs)
		self.host = host
		self.port = int(port)

	@property
	def endpoint(self) -> str:
		return f"{self.host}:{self.port}"

	async def _open_streams(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
		return await asyncio.open_connection(self.host, self.port)


class RfcommTransport(_SocketTransport):
	"""Classic Bluetooth serial (RFCOMM) link, as exposed by ESP32 BluetoothSerial."""

	def __init__(self, address: str, channel: int = 1, **kwargs: Any) -> None:
		super().__init__(**kwargs)
		self.address = address
		self.channel = int(channel)

	@property
	def endpoint(self) -> str:
		return f"{self.address}/{self.channel}"

	async def _open_streams(self) -> Tuple[asyncio.StreamReader, asyncio.StreamWriter]:
		if not hasattr(socket, "AF_BLUETOOTH"):
			raise ConnectionFailure("RFCOMM sockets are not supported on this platform")
		sock = socket.socket(socket.AF_BLUETOOTH, socket.SOCK_STREAM, socket.BTPROTO_RFCOMM)
		sock.setblocking(False)
		loop = asyncio.get_running_loop()
		try:
			await loop.sock_connect(sock, (self.address, self.channel))
		except BaseException:
			sock.close()
			raise
		return await asyncio.open_connection(sock=sock)


__all__ = [
	"READ_CHUNK",
	"RfcommTransport",
	"StreamTransport",
	"TcpTransport",
]
