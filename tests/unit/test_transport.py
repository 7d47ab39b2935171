import pytest

from pb3ld_verifier import transport
from pb3ld_verifier.config import PostgresSettings
from pb3ld_verifier.transport import PrimaryKeepalive, ReplicationStream, format_lsn, parse_lsn


@pytest.mark.parametrize("text,lsn", [
    ("0/0", 0),
    ("0/16B3748", 0x16B3748),
    ("1/0", 1 << 32),
    ("FFFFFFFF/FFFFFFFF", (1 << 64) - 1),
    ("a/bc", (0xA << 32) | 0xBC),
])
def test_parse_lsn(text, lsn):
    assert parse_lsn(text) == lsn


def test_format_lsn():
    assert format_lsn(0x16B3748) == '0/16B3748'
    assert format_lsn((3 << 32) | 0x1000) == '3/1000'
    assert parse_lsn(format_lsn(0x123456789A)) == 0x123456789A


@pytest.mark.parametrize("text", ["", "16B3748", "x/1"])
def test_parse_invalid_lsn(text):
    with pytest.raises(ValueError):
        parse_lsn(text)


class KeepaliveOnlyCursor:
    wal_end = 0x16B3748

    def read_message(self):
        return None


def test_keepalive_wake_up_does_not_ask_for_a_reply(monkeypatch):
    monkeypatch.setattr(transport.select, 'select', lambda r, w, x, timeout: (r, [], []))
    stream = ReplicationStream(PostgresSettings())
    stream.cursor = KeepaliveOnlyCursor()

    frame = stream.read_frame(0.01)
    assert frame == PrimaryKeepalive(wal_end=0x16B3748, reply_requested=False)


def test_read_frame_times_out(monkeypatch):
    monkeypatch.setattr(transport.select, 'select', lambda r, w, x, timeout: ([], [], []))
    stream = ReplicationStream(PostgresSettings())
    stream.cursor = KeepaliveOnlyCursor()
    assert stream.read_frame(0.01) is None
