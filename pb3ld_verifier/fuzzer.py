import itertools
import os
import time
from datetime import datetime
from logging import getLogger

import psycopg

from .config import Settings
from .errors import ChannelClosed, ChannelTimeout, VerifierError, WireDecodeError
from .expectations import expected_transaction_messages
from .options import ReplicationSlotOptions
from .schema import TestSchema
from .session import ReplicationSession
from .transport import format_lsn
from .wire.messages import describe_message

logger = getLogger(__name__)


REPORT_SEPARATOR = '\n\n------\n\n'


class FuzzerError(VerifierError):
    """A transaction whose replicated messages did not come out as expected."""

    def __init__(self, message, transaction=None, expected_messages=None, received_messages=None, cause=None):
        super().__init__(message)
        self.transaction = transaction
        self.expected_messages = expected_messages
        self.received_messages = received_messages
        self.cause = cause

    def describe_expected_messages(self):
        return '\n'.join(describe_message(msg) for msg in self.expected_messages)

    def describe_received_messages(self):
        return '\n'.join(describe_message(msg) for msg in self.received_messages)


def build_failure_report(error, *datas) -> str:
    sections = list(datas)
    sections.append(str(error))
    if isinstance(error, FuzzerError):
        if error.transaction is not None:
            sections.append(f'\nTRANSACTION:\n\n{error.transaction.describe()}\n')
        if error.expected_messages is not None:
            sections.append(f'\nEXPECTED MESSAGES:\n\n{error.describe_expected_messages()}\n')
        if error.received_messages is not None:
            sections.append(f'\nRECEIVED MESSAGES:\n\n{error.describe_received_messages()}\n')
    return REPORT_SEPARATOR.join(sections) + '\n'


class FailureSink:
    def write_report(self, prefix: str, report: str):
        raise NotImplementedError()


class FileFailureSink(FailureSink):
    def __init__(self, errors_dir: str):
        self.errors_dir = errors_dir

    def write_report(self, prefix: str, report: str):
        os.makedirs(self.errors_dir, exist_ok=True)
        timestamp = datetime.now().strftime('%Y%m%d%H%M%S.%f')[:-3]
        path = os.path.join(self.errors_dir, f'{prefix}{timestamp}.log')
        with open(path, 'wt') as f:
            f.write(report)
        return path


class Fuzzer:
    """Runs generated transactions and checks the replication stream against them.

    A failed schema costs only its session: the report is written, the
    session torn down and, after failure_pause, the next schema starts on a
    fresh one. Fatal errors (a stalled stream, a receive loop that can't be
    stopped) propagate to the caller.
    """

    def __init__(
        self,
        settings: Settings,
        pg_api,
        session: ReplicationSession,
        failure_sink: FailureSink,
        killer=None,
        sleep=time.sleep,
    ):
        self.settings = settings
        self.pg_api = pg_api
        self.session = session
        self.failure_sink = failure_sink
        self.killer = killer
        self.sleep = sleep

        self.message_timeout = settings.replication.message_timeout
        self.extra_message_timeout = settings.replication.extra_message_timeout
        self.failure_pause = settings.fuzzer.failure_pause
        self.status_log_interval = settings.fuzzer.status_log_interval
        self.last_status_message = 0

        self.schemas_tested = 0
        self.transactions_tested = 0
        self.failures = 0

    def prepare(self):
        if not self.pg_api.is_superuser():
            raise VerifierError('not a superuser (is_superuser is not "on")')
        self.pg_api.create_replication_slot(
            self.settings.replication.slot_name,
            self.settings.replication.output_plugin,
        )

    def cleanup(self):
        self.session.close()
        self.pg_api.drop_replication_slot(self.settings.replication.slot_name)

    def options_source(self):
        if self.settings.fuzzer.option_matrix:
            return itertools.cycle(list(ReplicationSlotOptions.all_combinations(
                self.settings.fuzzer.binary_oid_ranges_candidates,
            )))
        return itertools.repeat(self.settings.plugin_options)

    def main_loop(self, schema_generator, transaction_generator_factory):
        options_source = self.options_source()
        try:
            while not (self.killer and self.killer.kill_now):
                schema = schema_generator.generate_schema()
                if schema is None:
                    logger.info('schema generator exhausted')
                    break

                options = next(options_source)
                if self.session.is_open and self.session.options != options:
                    self.session.close()

                try:
                    self.test_main(schema, transaction_generator_factory(schema), options)
                except (FuzzerError, psycopg.Error):
                    self.failures += 1
                    self.session.close()
                    self.sleep(self.failure_pause)
                self.schemas_tested += 1
        finally:
            self.session.close()
        logger.info(
            f'tested {self.schemas_tested} schemas, {self.transactions_tested} transactions, '
            f'{self.failures} failures'
        )

    def test_main(self, schema: TestSchema, generator, options: ReplicationSlotOptions):
        setup_sql = schema.setup_sql()
        try:
            try:
                self.pg_api.execute(setup_sql)
            except psycopg.Error as e:
                self.log_fuzz_error('setup', e, setup_sql)
                raise

            table_oid = self.pg_api.get_table_oid(schema) if options.enable_table_oids else 0

            if not self.session.is_open:
                self.session.open(options)

            try:
                self.run_tests(schema, generator, options, table_oid)
            except (FuzzerError, psycopg.Error) as e:
                self.log_fuzz_error('run', e, setup_sql)
                raise
        finally:
            self.pg_api.drop_table(schema)

    def log_status_if_required(self, schema: TestSchema):
        curr_time = time.time()
        if curr_time - self.last_status_message < self.status_log_interval:
            return
        self.last_status_message = curr_time
        logger.info(f'working on table {schema.table_name} columns {", ".join(schema.column_names)}')

    def run_tests(self, schema: TestSchema, generator, options: ReplicationSlotOptions, table_oid: int = 0):
        minimum_lsn = self.pg_api.current_wal_lsn()
        logger.debug(f'minimum LSN for {schema.table_name}: {format_lsn(minimum_lsn)}')

        transaction = None
        while True:
            next_transaction = generator.generate_transaction()
            if next_transaction is None:
                break
            transaction = next_transaction

            self.log_status_if_required(schema)

            with self.pg_api.transaction():
                for operation in transaction.operations:
                    operation.execute(schema, self.pg_api)

            expected = expected_transaction_messages(schema, transaction, options, table_oid)
            self.compare_messages(transaction, expected, minimum_lsn)
            self.transactions_tested += 1

        self.check_no_extra_messages(transaction, minimum_lsn)

    def compare_messages(self, transaction, expected_messages, minimum_lsn):
        received_messages = []
        for expected_message in expected_messages:
            decoded = self._receive_current(transaction, expected_messages, received_messages, minimum_lsn)
            received_messages.append(decoded.message)
            if decoded.message != expected_message:
                raise FuzzerError(
                    f'message number {len(received_messages)} does not match:\n'
                    f'    {decoded.message!r}\n\n  is not equal to\n\n    {expected_message!r}',
                    transaction=transaction,
                    expected_messages=expected_messages,
                    received_messages=received_messages,
                )

    def check_no_extra_messages(self, last_transaction, minimum_lsn):
        """Fail if anything arrives after the messages of the last transaction."""
        try:
            decoded = self._receive_current(
                last_transaction, [], [], minimum_lsn, timeout=self.extra_message_timeout,
            )
        except FuzzerError as e:
            if isinstance(e.cause, ChannelTimeout):
                return
            raise
        raise FuzzerError(
            f'unexpected extra message at {format_lsn(decoded.lsn)}:\n    {decoded.message!r}',
            transaction=last_transaction,
            expected_messages=[],
            received_messages=[decoded.message],
        )

    def _receive_current(self, transaction, expected_messages, received_messages, minimum_lsn, timeout=None):
        if timeout is None:
            timeout = self.message_timeout
        while True:
            try:
                decoded = self.session.receive(timeout)
            except ChannelTimeout as e:
                raise FuzzerError(
                    'timed out while waiting for DecodedMessage',
                    transaction=transaction,
                    expected_messages=expected_messages,
                    received_messages=received_messages,
                    cause=e,
                ) from e
            except ChannelClosed as e:
                raise FuzzerError(
                    f'replication stream ended: {e}',
                    transaction=transaction,
                    expected_messages=expected_messages,
                    received_messages=received_messages,
                    cause=e,
                ) from e

            if decoded.error is not None:
                if isinstance(decoded.error, WireDecodeError):
                    raise FuzzerError(
                        str(decoded.error),
                        transaction=transaction,
                        expected_messages=expected_messages,
                        received_messages=received_messages,
                        cause=decoded.error,
                    ) from decoded.error
                raise decoded.error

            if decoded.lsn < minimum_lsn:
                logger.debug(f'skipping stale message at {format_lsn(decoded.lsn)}')
                continue
            return decoded

    def log_fuzz_error(self, prefix, error, *datas):
        report = build_failure_report(error, *datas)
        path = self.failure_sink.write_report(prefix, report)
        logger.error(f'{prefix} failure: {error} (report: {path})')
