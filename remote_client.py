"""Client context: one event bus, one callback loop, one daemon session."""

import logging

from actions import ActionDispatcher
from callback_loop import CallbackLoop
from config_manager import ConfigManager, profile_url
from events import EventBus
from rpc_requests import is_local_source
from session import SessionManager
from torrent_model import SnapshotReconciler, TorrentFilter
from transport import TransmissionTransport

logger = logging.getLogger(__name__)


class RemoteClient:
    def __init__(self, config_manager=None, transport_factory=None, loop=None, bus=None):
        self.config_manager = config_manager or ConfigManager()
        self.preferences = self.config_manager.get_preferences()
        self.bus = bus or EventBus()
        self.loop = loop or CallbackLoop()
        self.reconciler = SnapshotReconciler()
        self.sessions = SessionManager(
            self.bus,
            self.loop,
            self.reconciler,
            transport_factory=transport_factory or self._make_transport,
            update_interval=self.preferences.get("update_interval", 3),
        )
        self.actions = ActionDispatcher(
            self.sessions, self.loop, self.bus, start_paused=self.preferences.get("start_paused", False)
        )
        self.current_profile_id = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *exc):
        self.close()

    def _make_transport(self, profile):
        return TransmissionTransport(
            profile_url(profile),
            username=profile.get("user") or None,
            password=profile.get("password") or None,
            timeout=self.preferences.get("request_timeout", 30),
            verify_ssl=self.preferences.get("verify_ssl", True),
        )

    @property
    def session(self):
        return self.sessions.session

    def subscribe(self, name, receiver):
        return self.bus.subscribe(name, receiver)

    def start(self):
        if hasattr(self.loop, "start"):
            self.loop.start()

    def close(self):
        self.sessions.disconnect()
        if hasattr(self.loop, "stop"):
            self.loop.stop()
        self.sessions.close_transport()

    # -- connection ----------------------------------------------------

    def connect(self, profile):
        return self.sessions.connect(profile)

    def connect_profile(self, pid):
        profile = self.config_manager.get_profile(pid)
        if not profile:
            logger.warning("No such profile: %s", pid)
            return None
        self.current_profile_id = pid
        return self.sessions.connect(profile)

    def disconnect(self):
        return self.sessions.disconnect()

    def auto_connect_if_required(self):
        """Connect to the default profile when it has a host and auto_connect set."""
        pid = self.config_manager.get_default_profile_id()
        profile = self.config_manager.get_profile(pid) if pid else None
        if not profile or not profile.get("host") or not profile.get("auto_connect"):
            return False
        return self.connect_profile(pid) is not None

    def set_settings(self, arguments):
        return self.sessions.set_settings(arguments)

    def refresh_settings(self):
        return self.sessions.refresh_settings()

    # -- torrents ------------------------------------------------------

    def torrents(self, criteria=0, text=""):
        with self.sessions.update_lock:
            return self.reconciler.snapshot(TorrentFilter(criteria, text))

    def pause(self, ids):
        return self.actions.submit("pause", ids)

    def resume(self, ids):
        return self.actions.submit("resume", ids)

    def verify(self, ids):
        return self.actions.submit("verify", ids)

    def remove(self, ids):
        return self.actions.submit("remove", ids)

    def delete(self, ids):
        return self.actions.submit("delete", ids)

    def add(self, sources, paused=None):
        """Local files go through the ordered batch; URLs are sent one by one."""
        files = [s for s in sources if is_local_source(s)]
        urls = [s for s in sources if not is_local_source(s)]
        worker = self.actions.submit_add(files, paused=paused) if files else None
        futures = [self.actions.add_url(u, paused=paused) for u in urls]
        return worker, [f for f in futures if f is not None]
