"""Shared test fixtures for pb3ld-verifier tests"""

import pytest

from pb3ld_verifier.config import Settings
from pb3ld_verifier.session import ReplicationSession
from tests.fixtures import FakePgApi, FakeTransport, MemoryFailureSink, tenk1_schema


@pytest.fixture
def tenk1():
    return tenk1_schema()


@pytest.fixture
def fake_transport():
    return FakeTransport()


@pytest.fixture
def fake_pg_api():
    return FakePgApi()


@pytest.fixture
def failure_sink():
    return MemoryFailureSink()


@pytest.fixture
def fast_settings():
    """Settings with timeouts short enough for in-process tests"""
    settings = Settings()
    settings.replication.message_timeout = 2
    settings.replication.extra_message_timeout = 0.05
    settings.replication.poll_interval = 0.01
    settings.replication.stall_timeout = 30
    settings.replication.shutdown_timeout = 2
    settings.fuzzer.failure_pause = 0
    return settings


@pytest.fixture
def session(fake_transport, fast_settings):
    session = ReplicationSession(
        transport_factory=lambda: fake_transport,
        slot_name=fast_settings.replication.slot_name,
        poll_interval=fast_settings.replication.poll_interval,
        stall_timeout=fast_settings.replication.stall_timeout,
        shutdown_timeout=fast_settings.replication.shutdown_timeout,
    )
    yield session
    if fake_transport.block_reads is not None:
        fake_transport.block_reads.set()
    if session.is_open:
        session.close()
