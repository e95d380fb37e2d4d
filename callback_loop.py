"""Single coordinating thread for state-changing callbacks.

Plays the role a GUI main loop plays for the desktop front end: worker
threads post work with ``call_after`` and everything that mutates session or
torrent state runs here, one callable at a time.
"""

import logging
import queue
import threading

logger = logging.getLogger(__name__)

_STOP = object()


class CallbackLoop:
    def __init__(self, name="callback-loop"):
        self.name = name
        self._queue = queue.Queue()
        self._thread = None
        self._timers = set()
        self._timers_lock = threading.Lock()

    @property
    def running(self):
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        if self.running:
            return
        self._thread = threading.Thread(target=self._run, name=self.name, daemon=True)
        self._thread.start()

    def stop(self, timeout=5):
        with self._timers_lock:
            timers = list(self._timers)
            self._timers.clear()
        for t in timers:
            t.cancel()
        if not self.running:
            return
        self._queue.put(_STOP)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)
        self._thread = None

    def call_after(self, fn, *args, **kwargs):
        self._queue.put((fn, args, kwargs))

    def call_later(self, delay, fn, *args, **kwargs):
        """Post ``fn`` onto the loop once ``delay`` seconds have elapsed."""
        timer = None

        def fire():
            with self._timers_lock:
                self._timers.discard(timer)
            self.call_after(fn, *args, **kwargs)

        timer = threading.Timer(delay, fire)
        timer.daemon = True
        with self._timers_lock:
            self._timers.add(timer)
        timer.start()
        return timer

    def _run(self):
        while True:
            item = self._queue.get()
            if item is _STOP:
                break
            fn, args, kwargs = item
            try:
                fn(*args, **kwargs)
            except Exception:
                logger.exception("Unhandled error in %s callback %r", self.name, fn)
