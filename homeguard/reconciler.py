"""State owner for security modes and the alarm history."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union

from homeguard.models.alarm_record import AlarmRecord
from homeguard.models.connection_state import ConnectionState
from homeguard.models.mode import Mode
from homeguard.models.notification_system import Notice, NotificationSystem
from homeguard.protocol import VariantProfile, transition_reason
from homeguard.store import HistoryStore

logger = logging.getLogger(__name__)

NOT_CONNECTED_NOTICE = "Not connected to Wi-Fi"

Listener = Callable[[str, Dict[str, Any]], None]


class Transport(Protocol):
    @property
    def endpoint(self) -> str: ...

    @property
    def state(self) -> ConnectionState: ...

    async def connect(self) -> ConnectionState: ...

    async def close(self) -> None: ...

    async def set_mode(self, mode: Mode, enabled: bool) -> bool: ...


class Reconciler:
    """Own the mode flags and the history, and keep them in step with the device.

    Push variants (bluetooth, tcp) commit a toggle as soon as the command has
    been handed to the transport. The http variant commits only after the
    device accepted the change, and otherwise raises a notice and leaves
    state and history untouched.

    Inbound device messages only ever append to the history; flags change
    through toggles or the startup status sync.

    Blocking work (the network check and history writes) runs in worker
    threads so the event loop keeps serving other sessions and the listener.

    Subscribers receive ``(event, payload)`` with event one of ``modes``,
    ``history``, ``notice``, ``network`` or ``connection``.
    """

    def __init__(
        self,
        profile: VariantProfile,
        transport: Transport,
        *,
        store: Optional[HistoryStore] = None,
        notifier: Optional[NotificationSystem] = None,
        network_available: Optional[Callable[[], bool]] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.profile = profile
        self.transport = transport
        self.store = store
        self.notifier = notifier or NotificationSystem()
        self._network_available = network_available
        self._clock = clock
        self._classifier = profile.classifier()
        self._modes: Dict[Mode, bool] = {mode: False for mode in profile.modes}
        self._history: List[AlarmRecord] = []
        self._listeners: List[Listener] = []
        self._network: Optional[bool] = None
        self._persist_lock = asyncio.Lock()
        self.notifier.add_listener(self._on_notice)

    # ------------------------------------------------------------------
    # Read-only views
    # ------------------------------------------------------------------
    @property
    def modes(self) -> Dict[Mode, bool]:
        return dict(self._modes)

    @property
    def history(self) -> Tuple[AlarmRecord, ...]:
        return tuple(self._history)

    @property
    def connection(self) -> ConnectionState:
        return self.transport.state

    @property
    def network(self) -> Optional[bool]:
        """Last network availability answer, ``None`` when unchecked."""
        return self._network

    @property
    def last_notice(self) -> Optional[Notice]:
        return self.notifier.latest

    def is_active(self, mode: Union[Mode, str]) -> bool:
        return self._modes[self._resolve(mode)]

    def snapshot(self) -> Dict[str, Any]:
        return {
            "variant": self.profile.name,
            "endpoint": self.transport.endpoint,
            "connection": self.connection.to_dict(),
            "network": self._network,
            "modes": {mode.value: active for mode, active in self._modes.items()},
            "history": [record.to_dict() for record in self._history],
        }

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    async def start(self) -> ConnectionState:
        await self.load_history()
        if self._network_available is not None:
            await self.check_network()
        state = await self.transport.connect()
        self._publish("connection", state.to_dict())
        if self.profile.sync_on_start:
            await self.sync_status()
        return state

    async def listen(self) -> None:
        """Feed every inbound line to :meth:`handle_message` until the stream ends."""
        messages = getattr(self.transport, "messages", None)
        if messages is None:
            return
        async for line in messages():
            await self.handle_message(line)
        logger.info("Inbound stream from %s finished (%s)", self.transport.endpoint, self.connection.status.value)
        self._publish("connection", self.connection.to_dict())

    async def stop(self) -> None:
        await self.transport.close()
        if self.store is not None:
            async with self._persist_lock:
                self.store.close()
        self._publish("connection", self.connection.to_dict())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------
    async def toggle(self, mode: Union[Mode, str], desired: bool) -> bool:
        target = self._resolve(mode)
        desired = bool(desired)
        if self.profile.confirm_toggles:
            return await self._confirmed_toggle(target, desired)
        await self.transport.set_mode(target, desired)
        await self._commit(target, desired)
        return True

    async def sync_status(self) -> bool:
        poll = getattr(self.transport, "get_status", None)
        if poll is None:
            return False
        status = await poll()
        if status is None:
            logger.info("No status available from %s", self.transport.endpoint)
            return False
        for mode in (Mode.AWAY, Mode.SECURITY):
            if mode in self._modes:
                self._modes[mode] = status.get(mode.value) is True
        self._publish("modes", {"modes": self._mode_payload(), "source": "sync"})
        return True

    async def handle_message(self, text: str) -> AlarmRecord:
        record = AlarmRecord.create(text, self._classifier.classify(text), clock=self._clock)
        await self._append(record)
        return record

    async def clear_history(self) -> None:
        self._history.clear()
        await self._persist()
        self._publish("history", {"cleared": True, "size": 0})

    async def load_history(self) -> None:
        if self.store is None:
            return
        self._history = await asyncio.to_thread(self.store.load)
        self._publish("history", {"loaded": True, "size": len(self._history)})

    async def check_network(self) -> Optional[bool]:
        """Ask the network check in a worker thread and publish a ``network`` event on change."""
        if self._network_available is None:
            return None
        available = bool(await asyncio.to_thread(self._network_available))
        if available != self._network:
            self._network = available
            self._publish("network", {"available": available})
        return available

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    async def _confirmed_toggle(self, mode: Mode, desired: bool) -> bool:
        if await self.check_network() is False:
            self.notifier.notify_failure(NOT_CONNECTED_NOTICE)
            return False
        if not await self.transport.set_mode(mode, desired):
            self.notifier.notify_failure(f"Failed to update {mode.label} mode on device")
            return False
        await self._commit(mode, desired)
        return True

    async def _commit(self, mode: Mode, desired: bool) -> None:
        self._modes[mode] = desired
        self._publish("modes", {"modes": self._mode_payload(), "source": "toggle"})
        await self._append(AlarmRecord.create(transition_reason(mode, desired), mode.value, clock=self._clock))

    async def _append(self, record: AlarmRecord) -> None:
        self._history.append(record)
        await self._persist()
        self._publish("history", {"record": record.to_dict(), "size": len(self._history)})

    async def _persist(self) -> None:
        if self.store is None:
            return
        records = list(self._history)
        async with self._persist_lock:
            await asyncio.to_thread(self.store.save, records)

    def _resolve(self, mode: Union[Mode, str]) -> Mode:
        resolved = Mode.parse(mode)
        if not self.profile.supports(resolved):
            raise ValueError(f"{resolved.value} mode is not available in the {self.profile.name} variant")
        return resolved

    def _mode_payload(self) -> Dict[str, bool]:
        return {mode.value: active for mode, active in self._modes.items()}

    def _on_notice(self, notice: Notice) -> None:
        self._publish("notice", notice.to_dict())

    def _publish(self, event: str, payload: Dict[str, Any]) -> None:
        for listener in list(self._listeners):
            try:
                listener(event, payload)
            except Exception:
                logger.exception("Reconciler listener failed for %s event", event)


__all__ = ["NOT_CONNECTED_NOTICE", "Reconciler", "Transport"]
