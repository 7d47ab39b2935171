"""Streaming replication transport on top of psycopg2.

psycopg2 owns the replication protocol: it frames CopyData, parses XLogData
and answers keepalives on its own. This module turns what it exposes into the
small set of frames the session driver works with.
"""

import select
from dataclasses import dataclass
from logging import getLogger

import psycopg2
import psycopg2.extras

from .config import PostgresSettings

logger = getLogger(__name__)


def parse_lsn(text: str) -> int:
    high, sep, low = text.strip().partition('/')
    if not sep:
        raise ValueError(f'invalid LSN "{text}"')
    return (int(high, 16) << 32) | int(low, 16)


def format_lsn(lsn: int) -> str:
    return f'{lsn >> 32:X}/{lsn & 0xFFFFFFFF:X}'


@dataclass
class XLogData:
    data_start: int
    wal_end: int
    send_time: object
    payload: bytes


@dataclass
class PrimaryKeepalive:
    wal_end: int
    reply_requested: bool


@dataclass
class SystemIdentification:
    system_id: str
    timeline: int
    xlog_pos: int
    dbname: str


class ReplicationStream:
    def __init__(self, postgres_settings: PostgresSettings):
        self.postgres_settings = postgres_settings
        self.connection = None
        self.cursor = None

    def connect(self):
        self.connection = psycopg2.connect(
            connection_factory=psycopg2.extras.LogicalReplicationConnection,
            **self.postgres_settings.get_connection_config(),
        )
        self.cursor = self.connection.cursor()
        logger.debug(f'replication connection to {self.postgres_settings.host} established')

    def identify_system(self) -> SystemIdentification:
        self.cursor.execute('IDENTIFY_SYSTEM')
        system_id, timeline, xlog_pos, dbname = self.cursor.fetchone()
        return SystemIdentification(
            system_id=system_id,
            timeline=int(timeline),
            xlog_pos=parse_lsn(xlog_pos),
            dbname=dbname,
        )

    def start_replication(self, slot_name: str, start_lsn: int, plugin_args: dict):
        logger.info(f'starting replication on slot {slot_name} at {format_lsn(start_lsn)}')
        self.cursor.start_replication(
            slot_name=slot_name,
            decode=False,
            start_lsn=start_lsn,
            options=plugin_args,
        )

    def read_frame(self, timeout: float):
        """Return the next frame, or None when nothing arrived within timeout."""
        msg = self.cursor.read_message()
        if msg is None:
            ready, _, _ = select.select([self.cursor], [], [], timeout)
            if not ready:
                return None
            msg = self.cursor.read_message()
        if msg is None:
            # the wake up was a keepalive; psycopg2 already answered it if asked to
            return PrimaryKeepalive(wal_end=self.cursor.wal_end, reply_requested=False)
        return XLogData(
            data_start=msg.data_start,
            wal_end=msg.wal_end,
            send_time=msg.send_time,
            payload=bytes(msg.payload),
        )

    def send_status_update(self, lsn: int):
        self.cursor.send_feedback(write_lsn=lsn, flush_lsn=lsn, apply_lsn=lsn)

    def close(self):
        if self.connection is None:
            return
        try:
            self.connection.close()
        except psycopg2.Error as e:
            logger.warning(f'failed to close replication connection: {e}')
        self.connection = None
        self.cursor = None
