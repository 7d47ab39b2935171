#!/usr/bin/env python3

import argparse
import logging
import random
import sys

from .config import Settings
from .errors import ConfigurationError
from .fuzzer import FileFailureSink, Fuzzer
from .generators import (
    ExhaustiveSchemaGenerator,
    ExhaustiveTransactionGenerator,
    FuzzySchemaGenerator,
    FuzzyTransactionGenerator,
)
from .options import ReplicationSlotOptions
from .pg_api import PostgresApi
from .session import ReplicationSession
from .transport import ReplicationStream
from .utils import GracefulKiller


def set_logging_config(tags, log_level_str=None):
    """Configure logging to output only to stderr."""
    handlers = [logging.StreamHandler(sys.stderr)]

    log_levels = {
        'critical': logging.CRITICAL,
        'error': logging.ERROR,
        'warning': logging.WARNING,
        'info': logging.INFO,
        'debug': logging.DEBUG,
    }

    log_level = log_levels.get(log_level_str)
    if log_level is None:
        logging.warning(f'Unknown log level {log_level_str}, setting info')
        log_level = logging.INFO

    logging.basicConfig(
        level=log_level,
        format=f'[{tags} %(asctime)s %(levelname)8s] %(message)s',
        handlers=handlers,
    )


def load_settings(args) -> Settings:
    config = Settings()
    if args.config:
        config.load(args.config)
    if args.seed is not None:
        config.fuzzer.seed = args.seed
    return config


def build_session(config: Settings) -> ReplicationSession:
    return ReplicationSession(
        transport_factory=lambda: ReplicationStream(config.postgres),
        slot_name=config.replication.slot_name,
        poll_interval=config.replication.poll_interval,
        stall_timeout=config.replication.stall_timeout,
        shutdown_timeout=config.replication.shutdown_timeout,
        status_interval=config.replication.status_interval,
    )


def build_generators(generator_name, config: Settings, rng: random.Random):
    max_transactions = config.fuzzer.max_transactions or None
    if generator_name == 'exhaustive':
        schema_generator = ExhaustiveSchemaGenerator(max_columns=config.fuzzer.max_columns)

        def transaction_generator_factory(schema):
            return ExhaustiveTransactionGenerator(schema, extended=config.fuzzer.extended_boundaries)
    else:
        schema_generator = FuzzySchemaGenerator(rng)

        def transaction_generator_factory(schema):
            return FuzzyTransactionGenerator(schema, rng, max_transactions=max_transactions)
    return schema_generator, transaction_generator_factory


def run_fuzzer(args, config: Settings, generator_name):
    set_logging_config(generator_name, log_level_str=config.log_level)

    seed = config.fuzzer.seed
    if seed is None:
        seed = random.SystemRandom().getrandbits(63)
    logging.info(f'random seed {seed}')
    rng = random.Random(seed)

    pg_api = PostgresApi(config.postgres)
    fuzzer = Fuzzer(
        settings=config,
        pg_api=pg_api,
        session=build_session(config),
        failure_sink=FileFailureSink(config.fuzzer.errors_dir),
        killer=GracefulKiller(),
    )
    try:
        fuzzer.prepare()
        schema_generator, transaction_generator_factory = build_generators(generator_name, config, rng)
        fuzzer.main_loop(schema_generator, transaction_generator_factory)
    finally:
        fuzzer.cleanup()
        pg_api.close()


def run_check_options(args, config: Settings):
    set_logging_config('options', log_level_str=config.log_level)

    plugin_args = config.plugin_options.to_plugin_args()
    for option in args.option or []:
        name, sep, value = option.partition('=')
        plugin_args[name.strip()] = value if sep else None

    try:
        options = ReplicationSlotOptions.from_plugin_args(plugin_args)
    except ConfigurationError as e:
        logging.error(f'invalid options: {e}')
        return 1

    print(options.describe())
    ranges = options.binary_ranges()
    if ranges:
        print(f'binary output for type oids in: {ranges}')
    else:
        print('binary output disabled')
    return 0


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument(
        "mode", help="run mode",
        type=str,
        choices=["fuzz", "exhaustive", "check_options"])
    parser.add_argument("--config", help="config file path", default=None, type=str)
    parser.add_argument("--seed", help="random seed, for replaying a fuzz run", type=int, default=None)
    parser.add_argument(
        "--option", action="append", metavar="NAME=VALUE",
        help="plugin option to check, may be repeated (check_options mode only)",
    )
    args = parser.parse_args()

    config = load_settings(args)

    if args.mode == 'fuzz':
        run_fuzzer(args, config, config.fuzzer.generator)
    if args.mode == 'exhaustive':
        run_fuzzer(args, config, 'exhaustive')
    if args.mode == 'check_options':
        sys.exit(run_check_options(args, config))


if __name__ == '__main__':
    main()
