import enum
import logging

import rpc_requests

logger = logging.getLogger(__name__)

DEFAULT_UPDATE_INTERVAL = 3


class PollState(enum.Enum):
    IDLE = "idle"
    WAITING = "waiting"
    IN_FLIGHT = "in-flight"


class PollScheduler:
    """Periodic ``torrent-get`` while a session is connected.

    The next request is only scheduled once the previous one has been fully
    applied, so polls of one session never overlap. All methods except
    ``_on_response`` run on the callback loop.
    """

    def __init__(self, manager, loop, interval=DEFAULT_UPDATE_INTERVAL):
        self._manager = manager
        self._loop = loop
        self.interval = interval
        self.state = PollState.IDLE
        self._epoch = None

    def start(self, epoch):
        self._epoch = epoch
        self._issue(epoch, first=True)

    def _issue(self, epoch, first):
        transport = self._manager.transport_for(epoch)
        if transport is None:
            logger.debug("Poll for epoch %s stopped, session is gone", epoch)
            self.state = PollState.IDLE
            return
        self.state = PollState.IN_FLIGHT
        transport.dispatch_async(rpc_requests.torrent_get(), self._on_response, (epoch, first))

    def _on_response(self, response, status, context):
        epoch, first = context
        self._loop.call_after(self._complete, response, status, epoch, first)

    def _complete(self, response, status, epoch, first):
        keep_polling = self._manager.apply_poll(epoch, response, status, first)
        if epoch != self._epoch:
            # a newer session owns the scheduler now
            return
        if not keep_polling:
            self.state = PollState.IDLE
            return
        self.state = PollState.WAITING
        self._loop.call_later(self.interval, self._on_timer, epoch)

    def _on_timer(self, epoch):
        if epoch != self._epoch:
            return
        self._issue(epoch, first=False)
