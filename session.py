"""Connection lifecycle for one daemon.

``SessionManager`` is the only writer of ``Session``. Worker-thread callbacks
are marshalled onto the callback loop and then take ``update_lock`` before
touching the session or the torrent set. Every request is tagged with the
epoch it was issued under; results from an older epoch are dropped.
"""

from __future__ import annotations

import enum
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple

import events
import rpc_requests
from poller import DEFAULT_UPDATE_INTERVAL, PollScheduler
from rpc_errors import FAIL_RESPONSE_UNSUCCESSFUL, STATUS_OK, MalformedResponseError, error_from_status
from torrent_model import SnapshotReconciler

logger = logging.getLogger(__name__)

MAX_FAILURES = 3


class ConnectionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


@dataclass
class Session:
    state: ConnectionState = ConnectionState.DISCONNECTED
    server_settings: Optional[Dict[str, Any]] = None
    fail_count: int = 0
    update_serial: int = 0
    epoch: int = 0

    @property
    def connected(self) -> bool:
        return self.state is ConnectionState.CONNECTED


class SessionManager:
    def __init__(
        self,
        bus: events.EventBus,
        loop,
        reconciler: Optional[SnapshotReconciler] = None,
        transport=None,
        transport_factory=None,
        update_interval: float = DEFAULT_UPDATE_INTERVAL,
    ) -> None:
        self.bus = bus
        self.loop = loop
        self.reconciler = reconciler if reconciler is not None else SnapshotReconciler()
        self.transport = transport
        self._transport_factory = transport_factory
        self.session = Session()
        self.update_lock = threading.RLock()
        self.poller = PollScheduler(self, loop, update_interval)

    # -- queries -------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self.session.state

    def is_current(self, epoch: int) -> bool:
        with self.update_lock:
            return epoch == self.session.epoch and self.session.connected

    def transport_for(self, epoch: int):
        """The transport to use for ``epoch``, or ``None`` once it is stale."""
        with self.update_lock:
            if epoch == self.session.epoch and self.session.connected:
                return self.transport
            return None

    def active_transport(self):
        with self.update_lock:
            return self.transport if self.session.connected else None

    def server_settings(self) -> Optional[Dict[str, Any]]:
        with self.update_lock:
            settings = self.session.server_settings
            return dict(settings) if settings is not None else None

    # -- helpers -------------------------------------------------------

    def _publish(self, pending: List[Tuple[str, Dict[str, Any]]]) -> None:
        # Events go out after update_lock is released so receivers may call back in.
        for name, payload in pending:
            self.bus.publish(name, self, **payload)

    def _teardown(self) -> None:
        self.session.epoch += 1
        self.session.state = ConnectionState.DISCONNECTED
        self.session.server_settings = None
        self.reconciler.clear()

    def _replace_transport(self, profile) -> None:
        if self._transport_factory is None:
            raise RuntimeError("No transport factory configured")
        old = self.transport
        self.transport = self._transport_factory(profile)
        if old is not None and old is not self.transport:
            old.close()

    def close_transport(self) -> None:
        with self.update_lock:
            transport, self.transport = self.transport, None
        if transport is not None:
            transport.close()

    # -- lifecycle -----------------------------------------------------

    def connect(self, profile=None) -> int:
        """Start a connection attempt and return its epoch."""
        pending = []
        with self.update_lock:
            if self.session.state is not ConnectionState.DISCONNECTED:
                was_connected = self.session.connected
                self._teardown()
                if was_connected:
                    pending.append((events.CONNECTION_STATE_CHANGED, {"connected": False}))
            if profile is not None:
                self._replace_transport(profile)
            if self.transport is None:
                raise RuntimeError("No transport configured")
            self.session.epoch += 1
            self.session.state = ConnectionState.CONNECTING
            epoch = self.session.epoch
            transport = self.transport
        pending.append((events.STATUS_MESSAGE, {"text": "Connecting..."}))
        self._publish(pending)
        logger.info("Connecting to %s (epoch %s)", getattr(transport, "url", "daemon"), epoch)
        transport.dispatch_async(rpc_requests.session_get(), self._on_session_get, epoch)
        return epoch

    def disconnect(self) -> bool:
        with self.update_lock:
            if self.session.state is ConnectionState.DISCONNECTED:
                return False
            self._teardown()
        logger.info("Disconnected")
        self._publish([
            (events.CONNECTION_STATE_CHANGED, {"connected": False}),
            (events.STATUS_MESSAGE, {"text": "Disconnected."}),
        ])
        return True

    def refresh_settings(self) -> bool:
        with self.update_lock:
            if not self.session.connected:
                return False
            epoch = self.session.epoch
            transport = self.transport
        transport.dispatch_async(rpc_requests.session_get(), self._on_session_get, epoch)
        return True

    def set_settings(self, arguments: Dict[str, Any]) -> bool:
        with self.update_lock:
            if not self.session.connected:
                transport = None
            else:
                epoch = self.session.epoch
                transport = self.transport
        if transport is None:
            self._publish([(events.STATUS_MESSAGE, {"text": "Not connected."})])
            return False
        transport.dispatch_async(rpc_requests.session_set(arguments), self._on_session_set, epoch)
        return True

    # -- response handling ---------------------------------------------

    def _on_session_get(self, response, status, epoch) -> None:
        self.loop.call_after(self._handle_session_get, response, status, epoch)

    def _handle_session_get(self, response, status, epoch) -> None:
        pending = []
        start_polling = False
        with self.update_lock:
            if epoch != self.session.epoch:
                logger.debug("Dropping session-get for stale epoch %s", epoch)
                return
            error = error_from_status(response, status)
            settings = response.get("arguments") if error is None and isinstance(response, dict) else None
            if error is None and not isinstance(settings, dict):
                error = MalformedResponseError("session-get without arguments")

            if error is not None:
                message = str(error)
                logger.warning("session-get failed: %s", message)
                if self.session.state is ConnectionState.CONNECTING:
                    self.session.state = ConnectionState.DISCONNECTED
                    self.session.server_settings = None
                pending.append((events.STATUS_MESSAGE, {"text": message}))
                pending.append((events.ERROR_DIALOG, {"message": message}))
            elif self.session.state is ConnectionState.CONNECTING:
                self.session.state = ConnectionState.CONNECTED
                self.session.server_settings = settings
                self.session.fail_count = 0
                start_polling = True
                version = settings.get("version")
                text = f"Connected to Transmission {version}" if version else "Connected."
                pending.append((events.CONNECTION_STATE_CHANGED, {"connected": True}))
                pending.append((events.STATUS_MESSAGE, {"text": text}))
            else:
                self.session.server_settings = settings
                pending.append((events.SESSION_UPDATED, {"settings": dict(settings)}))
        self._publish(pending)
        if start_polling:
            self.poller.start(epoch)

    def _on_session_set(self, response, status, epoch) -> None:
        self.loop.call_after(self._handle_session_set, response, status, epoch)

    def _handle_session_set(self, response, status, epoch) -> None:
        if not self.is_current(epoch):
            return
        error = error_from_status(response, status)
        if error is not None:
            self._publish([
                (events.STATUS_MESSAGE, {"text": str(error)}),
                (events.ERROR_DIALOG, {"message": str(error)}),
            ])
        # The daemon may have applied part of the change even when it complains.
        if status in (STATUS_OK, FAIL_RESPONSE_UNSUCCESSFUL):
            self.refresh_settings()

    def apply_poll(self, epoch, response, status, first) -> bool:
        """Fold one ``torrent-get`` result into the session.

        Returns whether the scheduler should keep polling this epoch.
        """
        pending = []
        with self.update_lock:
            if epoch != self.session.epoch or not self.session.connected:
                logger.debug("Dropping torrent-get for stale epoch %s", epoch)
                return False

            error = error_from_status(response, status)
            stats = None
            if error is None:
                try:
                    stats = self.reconciler.reconcile(response, first)
                except MalformedResponseError as e:
                    error = e

            if error is not None:
                self.session.fail_count += 1
                message = str(error)
                logger.warning("torrent-get failed (%s/%s): %s", self.session.fail_count, MAX_FAILURES, message)
                if self.session.fail_count >= MAX_FAILURES:
                    self._teardown()
                    pending.append((events.CONNECTION_STATE_CHANGED, {"connected": False}))
                    pending.append((events.STATUS_MESSAGE, {"text": message}))
                    pending.append((events.ERROR_DIALOG, {"message": message}))
                    keep_polling = False
                else:
                    text = f"Request {self.session.fail_count}/{MAX_FAILURES} failed: {message}"
                    pending.append((events.STATUS_MESSAGE, {"text": text}))
                    keep_polling = True
            else:
                self.session.fail_count = 0
                self.session.update_serial += 1
                serial = self.session.update_serial
                pending.append((events.TORRENT_LIST_UPDATED, {"stats": stats, "update_serial": serial}))
                for torrent in stats.completed:
                    logger.info("Torrent completed: %s", torrent.name)
                    pending.append((events.TORRENT_COMPLETED, {"name": torrent.name, "torrent_id": torrent.id}))
                keep_polling = True
        self._publish(pending)
        return keep_polling
