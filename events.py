import blinker

CONNECTION_STATE_CHANGED = "connection-state-changed"
STATUS_MESSAGE = "status-message"
ERROR_DIALOG = "error-dialog"
TORRENT_LIST_UPDATED = "torrent-list-updated"
TORRENT_COMPLETED = "torrent-completed"
SESSION_UPDATED = "session-updated"

EVENT_NAMES = (
    CONNECTION_STATE_CHANGED,
    STATUS_MESSAGE,
    ERROR_DIALOG,
    TORRENT_LIST_UPDATED,
    TORRENT_COMPLETED,
    SESSION_UPDATED,
)


class EventBus:
    """Named signals a front end subscribes to.

    Payloads are keyword arguments:

    - ``connection-state-changed``: ``connected``
    - ``status-message``: ``text``
    - ``error-dialog``: ``message``
    - ``torrent-list-updated``: ``stats``, ``update_serial``
    - ``torrent-completed``: ``name``, ``torrent_id``
    - ``session-updated``: ``settings``
    """

    def __init__(self):
        self._signals = {name: blinker.Signal(name) for name in EVENT_NAMES}

    def signal(self, name):
        try:
            return self._signals[name]
        except KeyError:
            raise ValueError(f"Unknown event: {name}") from None

    def subscribe(self, name, receiver, weak=False):
        """Connect ``receiver(sender, **payload)``; strong reference by default."""
        self.signal(name).connect(receiver, weak=weak)
        return receiver

    def unsubscribe(self, name, receiver):
        self.signal(name).disconnect(receiver)

    def publish(self, name, sender=None, **payload):
        return self.signal(name).send(sender, **payload)
