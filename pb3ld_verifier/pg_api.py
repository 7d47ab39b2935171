from contextlib import contextmanager
from logging import getLogger

import psycopg
from psycopg import pq

from .config import PostgresSettings
from .schema import TestSchema
from .transport import parse_lsn

logger = getLogger(__name__)


class PostgresApi:
    def __init__(self, postgres_settings: PostgresSettings):
        self.postgres_settings = postgres_settings
        self.connection = psycopg.connect(
            autocommit=True,
            **postgres_settings.get_connection_config(),
        )
        logger.info(
            f"PostgresApi connected to {postgres_settings.host}:{postgres_settings.port}/{postgres_settings.dbname}"
        )

    def close(self):
        if self.connection is not None:
            self.connection.close()
            self.connection = None

    def execute(self, command, args=None):
        with self.connection.cursor() as cursor:
            cursor.execute(command, args)

    def fetch_one(self, command, args=None):
        with self.connection.cursor() as cursor:
            cursor.execute(command, args)
            return cursor.fetchone()

    def fetch_all(self, command, args=None):
        with self.connection.cursor() as cursor:
            cursor.execute(command, args)
            return cursor.fetchall()

    def execute_params(self, command: str, params, param_types, param_formats):
        """Run a statement binding every parameter with an explicit type oid and format.

        params holds the raw bytes of each parameter (None for NULL), already
        in the text or binary representation given by param_formats.
        """
        result = self.connection.pgconn.exec_params(
            command.encode("utf-8"),
            list(params),
            param_types=list(param_types),
            param_formats=list(param_formats),
        )
        if result.status not in (pq.ExecStatus.COMMAND_OK, pq.ExecStatus.TUPLES_OK):
            raise psycopg.errors.error_from_result(result, encoding="utf-8")
        return result

    @contextmanager
    def transaction(self):
        self.execute("BEGIN")
        try:
            yield self
        except BaseException:
            try:
                self.execute("ROLLBACK")
            except psycopg.Error as e:
                logger.warning(f"rollback failed: {e}")
            raise
        self.execute("COMMIT")

    def is_superuser(self) -> bool:
        row = self.fetch_one("SHOW is_superuser")
        return row[0] == "on"

    def current_wal_lsn(self) -> int:
        row = self.fetch_one("SELECT pg_current_wal_lsn()::text")
        return parse_lsn(row[0])

    def get_table_oid(self, schema: TestSchema) -> int:
        row = self.fetch_one("SELECT %s::regclass::oid::int8", (schema.qualified_name(),))
        return int(row[0])

    def create_replication_slot(self, slot_name, output_plugin):
        try:
            self.execute(
                "SELECT pg_create_logical_replication_slot(%s, %s)",
                (slot_name, output_plugin),
            )
        except psycopg.errors.DuplicateObject:
            logger.info(f"replication slot {slot_name} already exists, recreating")
            self.execute("SELECT pg_drop_replication_slot(%s)", (slot_name,))
            self.execute(
                "SELECT pg_create_logical_replication_slot(%s, %s)",
                (slot_name, output_plugin),
            )
        logger.info(f"created replication slot {slot_name} using {output_plugin}")

    def drop_replication_slot(self, slot_name):
        try:
            self.execute("SELECT pg_drop_replication_slot(%s)", (slot_name,))
        except psycopg.Error as e:
            logger.warning(f"failed to drop replication slot {slot_name}: {e}")

    def drop_table(self, schema: TestSchema):
        try:
            self.execute(schema.teardown_sql())
        except psycopg.Error as e:
            logger.warning(f"failed to drop table {schema.table_name}: {e}")

    def get_binary_changes(self, slot_name, plugin_args: dict) -> list[bytes]:
        """Consume the slot's pending changes in one go, outside of streaming replication."""
        flat_options = []
        for name, value in plugin_args.items():
            flat_options.extend([name, value])
        rows = self.fetch_all(
            "SELECT data FROM pg_logical_slot_get_binary_changes(%s, NULL, NULL, VARIADIC %s::text[])",
            (slot_name, flat_options),
        )
        return [bytes(row[0]) for row in rows]
