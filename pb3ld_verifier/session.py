import threading
import time
from dataclasses import dataclass
from enum import Enum
from logging import getLogger

from .channel import MessageChannel
from .errors import (
    ChannelClosed,
    ChannelTimeout,
    ReceiverShutdownError,
    ReplicationStallError,
    WireDecodeError,
)
from .options import ReplicationSlotOptions
from .transport import PrimaryKeepalive, format_lsn
from .wire.decoder import decode_wire_message

logger = getLogger(__name__)


class SessionState(Enum):
    DISCONNECTED = 'disconnected'
    CONNECTED = 'connected'
    STREAMING = 'streaming'
    SHUTTING_DOWN = 'shutting_down'


@dataclass
class DecodedMessage:
    lsn: int
    message_type: object = None
    message: object = None
    # set instead of message when the frame could not be decoded, or when
    # the receive loop failed
    error: Exception = None


class ReplicationSession:
    """Owns one streaming replication connection and its receive thread."""

    DEFAULT_POLL_INTERVAL = 0.5
    DEFAULT_STALL_TIMEOUT = 120
    DEFAULT_SHUTDOWN_TIMEOUT = 1
    DEFAULT_STATUS_INTERVAL = 10

    def __init__(
        self,
        transport_factory,
        slot_name: str,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        stall_timeout: float = DEFAULT_STALL_TIMEOUT,
        shutdown_timeout: float = DEFAULT_SHUTDOWN_TIMEOUT,
        status_interval: float = DEFAULT_STATUS_INTERVAL,
    ):
        self.transport_factory = transport_factory
        self.slot_name = slot_name
        self.poll_interval = poll_interval
        self.stall_timeout = stall_timeout
        self.shutdown_timeout = shutdown_timeout
        self.status_interval = status_interval

        self.state = SessionState.DISCONNECTED
        self.options = None
        self.transport = None
        self._channel = None
        self._cancel = None
        self._thread = None
        self._end_of_stream = False

    @property
    def is_open(self):
        return self.state != SessionState.DISCONNECTED

    def open(self, options: ReplicationSlotOptions):
        if self.state != SessionState.DISCONNECTED:
            raise RuntimeError(f'cannot open a session in state {self.state.value}')

        self.transport = self.transport_factory()
        try:
            self.transport.connect()
            self.state = SessionState.CONNECTED
            system = self.transport.identify_system()
            self.transport.start_replication(self.slot_name, system.xlog_pos, options.to_plugin_args())
        except Exception:
            self.transport.close()
            self.transport = None
            self.state = SessionState.DISCONNECTED
            raise

        self.options = options
        self._end_of_stream = False
        self._channel = MessageChannel(capacity=1)
        self._cancel = threading.Event()
        self._thread = threading.Thread(
            target=self._receive_loop,
            args=(self.transport, self._channel, self._cancel),
            name='ReplicationReceiver',
            daemon=True,
        )
        self._thread.start()
        self.state = SessionState.STREAMING
        logger.info(f'replication session started with options: {options.describe()}')

    def receive(self, timeout: float) -> DecodedMessage:
        """Next decoded message; ChannelTimeout if none arrives in time."""
        if self.state != SessionState.STREAMING:
            raise ChannelClosed(f'session is {self.state.value}')
        item = self._channel.receive(timeout)
        if item is None:
            self._end_of_stream = True
            raise ChannelClosed('receive loop has stopped')
        return item

    def _receive_loop(self, transport, channel: MessageChannel, cancel: threading.Event):
        applied_lsn = 0
        send_status_update = False
        last_frame_time = time.monotonic()
        last_status_time = last_frame_time
        try:
            while True:
                if applied_lsn and time.monotonic() - last_status_time >= self.status_interval:
                    send_status_update = True
                if send_status_update:
                    transport.send_status_update(applied_lsn)
                    last_status_time = time.monotonic()
                    send_status_update = False

                frame = transport.read_frame(self.poll_interval)
                if frame is None:
                    if cancel.is_set():
                        break
                    silence = time.monotonic() - last_frame_time
                    if silence >= self.stall_timeout:
                        raise ReplicationStallError(
                            f'no replication frames for {silence:.1f} seconds, '
                            f'last applied position {format_lsn(applied_lsn)}'
                        )
                    continue
                last_frame_time = time.monotonic()

                if isinstance(frame, PrimaryKeepalive):
                    send_status_update = frame.reply_requested
                    continue

                try:
                    decoded = decode_wire_message(frame.payload)
                except WireDecodeError as e:
                    logger.error(f'could not decode message at {format_lsn(frame.data_start)}: {e}')
                    channel.send(DecodedMessage(lsn=frame.data_start, error=e))
                else:
                    for message_type, message in decoded:
                        channel.send(DecodedMessage(
                            lsn=frame.data_start, message_type=message_type, message=message,
                        ))
                applied_lsn = frame.data_start + len(frame.payload) + 1
        except ChannelClosed:
            logger.warning('message channel closed under the receive loop')
            return
        except Exception as e:
            logger.error(f'receive loop failed: {e}', exc_info=True)
            try:
                channel.send(DecodedMessage(lsn=applied_lsn, error=e))
            except ChannelClosed:
                return

        try:
            channel.send(None)
        except ChannelClosed:
            return
        channel.close()

    def close(self):
        """Stop the receive loop and drop the connection.

        Raises ReceiverShutdownError when the receive loop doesn't hand over
        the end-of-stream marker and close the channel in time.
        """
        if self.state == SessionState.DISCONNECTED:
            return
        self.state = SessionState.SHUTTING_DOWN

        try:
            if self._thread is not None:
                self._cancel.set()
                drain_timeout = self.poll_interval + self.shutdown_timeout
                while not self._end_of_stream:
                    try:
                        item = self._channel.receive(drain_timeout)
                    except (ChannelTimeout, ChannelClosed) as e:
                        raise ReceiverShutdownError(
                            f'receive loop did not hand over the end of stream marker: {e}'
                        ) from e
                    if item is None:
                        self._end_of_stream = True
                    elif item.error is not None:
                        logger.debug(f'discarding error while shutting down: {item.error}')

                if not self._channel.wait_closed(self.shutdown_timeout):
                    raise ReceiverShutdownError(
                        f'message channel not closed within {self.shutdown_timeout} seconds'
                    )
                self._thread.join(self.shutdown_timeout)
        finally:
            self.transport.close()
            self.transport = None
            self._thread = None
            self._channel = None
            self._cancel = None
            self.options = None
            self.state = SessionState.DISCONNECTED
            logger.info('replication session closed')
