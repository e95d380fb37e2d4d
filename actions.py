import logging
import os
import threading

import events
import rpc_requests
from rpc_errors import TRANSPORT_FAILED, error_from_status

logger = logging.getLogger(__name__)

# action -> (request builder, label, progress text)
ACTIONS = {
    "pause": (rpc_requests.torrent_stop, "pause", "Pausing torrents..."),
    "resume": (rpc_requests.torrent_start, "resume", "Resuming torrents..."),
    "verify": (rpc_requests.torrent_verify, "verify", "Verifying torrents..."),
    "remove": (lambda ids: rpc_requests.torrent_remove(ids, delete_local_data=False), "remove", "Removing torrents..."),
    "delete": (lambda ids: rpc_requests.torrent_remove(ids, delete_local_data=True), "delete", "Removing torrents and data..."),
}


def _normalize_ids(ids):
    if ids is None:
        return []
    if isinstance(ids, int):
        ids = [ids]
    out = []
    seen = set()
    for i in ids:
        i = int(i)
        if i not in seen:
            seen.add(i)
            out.append(i)
    return out


def _added_name(response):
    args = response.get("arguments") if isinstance(response, dict) else None
    if not isinstance(args, dict):
        return None
    added = args.get("torrent-added") or args.get("torrent-duplicate")
    if isinstance(added, dict):
        return added.get("name")
    return None


class ActionDispatcher:
    """Sends user-triggered mutating requests.

    Results never touch torrent state; the next poll picks up the change.
    Failures are reported on ``error-dialog`` and are not retried.
    """

    def __init__(self, manager, loop, bus, start_paused=False):
        self._manager = manager
        self._loop = loop
        self._bus = bus
        self.start_paused = start_paused
        self._batch_lock = threading.Lock()

    def _status(self, text):
        self._bus.publish(events.STATUS_MESSAGE, self, text=text)

    def submit(self, action, ids):
        try:
            build, label, progress = ACTIONS[action]
        except KeyError:
            raise ValueError(f"Unknown action: {action}") from None

        transport = self._manager.active_transport()
        if transport is None:
            self._status("Not connected.")
            return None
        ids = _normalize_ids(ids)
        if not ids:
            self._status(f"No torrents selected to {label}.")
            return None

        self._status(progress)
        logger.info("%s %s", action, ids)
        return transport.dispatch_async(build(ids), self._on_result, f"{label} torrents")

    def add_url(self, url, paused=None):
        transport = self._manager.active_transport()
        if transport is None:
            self._status("Not connected.")
            return None
        paused = self.start_paused if paused is None else paused
        return transport.dispatch_async(rpc_requests.torrent_add_url(url, paused=paused), self._on_result, "add torrent")

    def add_from_filename(self, path, paused=None):
        """Add one local .torrent concurrently; ``False`` when nothing was sent."""
        if not os.path.isfile(path):
            return False
        transport = self._manager.active_transport()
        if transport is None:
            self._status("Not connected.")
            return False
        paused = self.start_paused if paused is None else paused
        try:
            request = rpc_requests.torrent_add_file(path, paused=paused)
        except OSError as e:
            self._report_error(f"Failed to add torrent: {e}")
            return False
        transport.dispatch_async(request, self._on_result, "add torrent")
        return True

    def submit_add(self, paths, paused=None):
        """Add local .torrent files one at a time on a dedicated thread.

        Each request waits for the previous response so the daemon registers
        the torrents in the given order. Returns the worker thread.
        """
        transport = self._manager.active_transport()
        if transport is None:
            self._status("Not connected.")
            return None
        paused = self.start_paused if paused is None else paused
        paths = list(paths)
        worker = threading.Thread(
            target=self._add_files_worker,
            args=(transport, paths, paused),
            name="add-files",
            daemon=True,
        )
        worker.start()
        return worker

    def _add_files_worker(self, transport, paths, paused):
        with self._batch_lock:
            for path in paths:
                try:
                    request = rpc_requests.torrent_add_file(path, paused=paused)
                except OSError as e:
                    logger.warning("Could not read %s: %s", path, e)
                    self._loop.call_after(self._report_error, f"Failed to add {os.path.basename(path)}: {e}")
                    continue
                try:
                    response, status = transport.dispatch(request)
                except Exception:
                    logger.exception("Adding %s failed", path)
                    response, status = None, TRANSPORT_FAILED
                self._loop.call_after(self._report, response, status, f"add {os.path.basename(path)}")

    def _on_result(self, response, status, label):
        self._loop.call_after(self._report, response, status, label)

    def _report(self, response, status, label):
        error = error_from_status(response, status)
        if error is None:
            name = _added_name(response)
            if name:
                self._status(f"Added {name}")
            return
        self._report_error(f"Failed to {label}: {error}")

    def _report_error(self, message):
        logger.warning(message)
        self._bus.publish(events.ERROR_DIALOG, self, message=message)
        self._status("Error occurred")
