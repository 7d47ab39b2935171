import threading
from collections import deque

from .errors import ChannelClosed, ChannelTimeout


class MessageChannel:
    """Bounded hand-off between the receive loop and the test loop.

    send() blocks while the channel is full, so the receiving side can never
    read further ahead of the test loop than the capacity allows. After
    close(), items already queued can still be received; after that receive()
    raises ChannelClosed.
    """

    def __init__(self, capacity: int = 1):
        if capacity < 1:
            raise ValueError(f'channel capacity should be positive and not {capacity}')
        self.capacity = capacity
        self._items = deque()
        self._closed = False
        self._cond = threading.Condition()

    @property
    def closed(self):
        with self._cond:
            return self._closed

    def send(self, item, timeout=None):
        with self._cond:
            ready = self._cond.wait_for(
                lambda: self._closed or len(self._items) < self.capacity, timeout,
            )
            if self._closed:
                raise ChannelClosed('send on a closed channel')
            if not ready:
                raise ChannelTimeout(f'channel still full after {timeout} seconds')
            self._items.append(item)
            self._cond.notify_all()

    def receive(self, timeout=None):
        with self._cond:
            self._cond.wait_for(lambda: self._items or self._closed, timeout)
            if self._items:
                item = self._items.popleft()
                self._cond.notify_all()
                return item
            if self._closed:
                raise ChannelClosed('receive on a closed and drained channel')
            raise ChannelTimeout(f'nothing received within {timeout} seconds')

    def close(self):
        with self._cond:
            self._closed = True
            self._cond.notify_all()

    def wait_closed(self, timeout=None) -> bool:
        with self._cond:
            return self._cond.wait_for(lambda: self._closed, timeout)
