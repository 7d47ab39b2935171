"""Test fixtures for pb3ld-verifier tests"""

from .fakes import FakePgApi, FakeTransport, ListSchemaGenerator, MemoryFailureSink
from .tenk1 import tbl_identity_full_schema, tenk1_schema

__all__ = [
    "FakePgApi",
    "FakeTransport",
    "ListSchemaGenerator",
    "MemoryFailureSink",
    "tbl_identity_full_schema",
    "tenk1_schema",
]
