"""
pg_pb3_ld verifier configuration

Settings are read from a YAML file. Each section maps onto a dataclass with
its own validate(); the standard libpq environment variables (PGHOST,
PGPORT, PGUSER, PGPASSWORD, PGDATABASE) override the postgres section.

Classes:
    PostgresSettings: connection parameters shared by the SQL and replication connections
    ReplicationSettings: slot, plugin and receive loop timing
    FuzzerSettings: generator choice and failure handling
    Settings: main configuration class that orchestrates all settings
"""

import os
from dataclasses import dataclass

import yaml

from .options import DEFAULT_BINARY_OID_RANGES_CANDIDATES, ReplicationSlotOptions


def stype(obj):
    return type(obj).__name__


def _is_number(value):
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass
class PostgresSettings:
    host: str = "localhost"
    port: int = 5432
    user: str = "postgres"
    password: str = ""
    dbname: str = "postgres"
    sslmode: str = "disable"
    # required for predictable replication positions
    synchronous_commit: str = "on"

    ENV_OVERRIDES = {
        "PGHOST": ("host", str),
        "PGPORT": ("port", int),
        "PGUSER": ("user", str),
        "PGPASSWORD": ("password", str),
        "PGDATABASE": ("dbname", str),
    }

    def apply_env_overrides(self):
        for env_name, (attr, cast) in self.ENV_OVERRIDES.items():
            value = os.environ.get(env_name)
            if value is not None:
                setattr(self, attr, cast(value))

    def validate(self):
        if not isinstance(self.host, str):
            raise ValueError(f"postgres host should be string and not {stype(self.host)}")

        if not isinstance(self.port, int):
            raise ValueError(f"postgres port should be int and not {stype(self.port)}")

        if not isinstance(self.user, str):
            raise ValueError(f"postgres user should be string and not {stype(self.user)}")

        if not isinstance(self.password, str):
            raise ValueError(
                f"postgres password should be string and not {stype(self.password)}"
            )

        if not isinstance(self.dbname, str):
            raise ValueError(f"postgres dbname should be string and not {stype(self.dbname)}")

        if not isinstance(self.sslmode, str):
            raise ValueError(f"postgres sslmode should be string and not {stype(self.sslmode)}")

        if not isinstance(self.synchronous_commit, str):
            raise ValueError(
                f"postgres synchronous_commit should be string and not {stype(self.synchronous_commit)}"
            )

    def get_connection_config(self):
        """Connection keywords accepted by both psycopg and psycopg2"""
        config = {
            "host": self.host,
            "port": self.port,
            "user": self.user,
            "dbname": self.dbname,
            "sslmode": self.sslmode,
            "options": f"-c synchronous_commit={self.synchronous_commit}",
        }
        if self.password:
            config["password"] = self.password
        return config


@dataclass
class ReplicationSettings:
    slot_name: str = "pgpb3ldtest"
    output_plugin: str = "pg_pb3_ld"
    message_timeout: float = 15
    extra_message_timeout: float = 0.5
    poll_interval: float = 0.5
    stall_timeout: float = 120
    status_interval: float = 10
    shutdown_timeout: float = 1

    def validate(self):
        if not isinstance(self.slot_name, str) or not self.slot_name:
            raise ValueError(
                f"replication slot_name should be non-empty string and not {stype(self.slot_name)}"
            )

        if not isinstance(self.output_plugin, str) or not self.output_plugin:
            raise ValueError(
                f"replication output_plugin should be non-empty string and not {stype(self.output_plugin)}"
            )

        for name in (
            "message_timeout", "extra_message_timeout", "poll_interval",
            "stall_timeout", "status_interval", "shutdown_timeout",
        ):
            value = getattr(self, name)
            if not _is_number(value):
                raise ValueError(f"replication {name} should be number and not {stype(value)}")
            if value <= 0:
                raise ValueError(f"replication {name} should be positive")

        if self.stall_timeout <= self.poll_interval:
            raise ValueError("replication stall_timeout should be larger than poll_interval")


@dataclass
class FuzzerSettings:
    generator: str = "fuzzy"
    seed: int = None
    max_transactions: int = 0
    max_columns: int = 2
    extended_boundaries: bool = False
    option_matrix: bool = False
    binary_oid_ranges_candidates: list = None
    failure_pause: float = 5
    errors_dir: str = "errors"
    status_log_interval: float = 300

    GENERATORS = ("fuzzy", "exhaustive")

    def __post_init__(self):
        if self.binary_oid_ranges_candidates is None:
            self.binary_oid_ranges_candidates = list(DEFAULT_BINARY_OID_RANGES_CANDIDATES)

    def validate(self):
        if self.generator not in FuzzerSettings.GENERATORS:
            raise ValueError(
                f"fuzzer generator should be one of {list(FuzzerSettings.GENERATORS)} and not {self.generator}"
            )

        if self.seed is not None and (not isinstance(self.seed, int) or isinstance(self.seed, bool)):
            raise ValueError(f"fuzzer seed should be int or None and not {stype(self.seed)}")

        if not isinstance(self.max_transactions, int) or self.max_transactions < 0:
            raise ValueError(
                f"fuzzer max_transactions should be non-negative integer and not {stype(self.max_transactions)}"
            )

        if not isinstance(self.max_columns, int) or self.max_columns < 0:
            raise ValueError(
                f"fuzzer max_columns should be non-negative integer and not {stype(self.max_columns)}"
            )

        if not isinstance(self.extended_boundaries, bool):
            raise ValueError(
                f"fuzzer extended_boundaries should be bool and not {stype(self.extended_boundaries)}"
            )

        if not isinstance(self.option_matrix, bool):
            raise ValueError(f"fuzzer option_matrix should be bool and not {stype(self.option_matrix)}")

        if not isinstance(self.binary_oid_ranges_candidates, list) or not all(
            isinstance(c, str) for c in self.binary_oid_ranges_candidates
        ):
            raise ValueError("fuzzer binary_oid_ranges_candidates should be a list of strings")

        if not _is_number(self.failure_pause) or self.failure_pause < 0:
            raise ValueError(
                f"fuzzer failure_pause should be non-negative number and not {stype(self.failure_pause)}"
            )

        if not isinstance(self.errors_dir, str):
            raise ValueError(f"fuzzer errors_dir should be string and not {stype(self.errors_dir)}")

        if not _is_number(self.status_log_interval):
            raise ValueError(
                f"fuzzer status_log_interval should be number and not {stype(self.status_log_interval)}"
            )


class Settings:
    DEFAULT_LOG_LEVEL = "info"

    def __init__(self):
        self.postgres = PostgresSettings()
        self.replication = ReplicationSettings()
        self.fuzzer = FuzzerSettings()
        self.plugin_options = ReplicationSlotOptions()
        self.settings_file = ""
        self.log_level = Settings.DEFAULT_LOG_LEVEL
        self.debug_log_level = False

    def load(self, settings_file):
        with open(settings_file, "r") as f:
            data = yaml.safe_load(f.read()) or {}

        self.settings_file = settings_file
        self.postgres = PostgresSettings(**data.pop("postgres", {}))
        self.replication = ReplicationSettings(**data.pop("replication", {}))
        self.fuzzer = FuzzerSettings(**data.pop("fuzzer", {}))
        self.plugin_options = ReplicationSlotOptions.from_plugin_args(data.pop("plugin_options", None) or {})
        self.log_level = data.pop("log_level", Settings.DEFAULT_LOG_LEVEL)

        if data:
            raise Exception(f"Unsupported config options: {list(data.keys())}")

        self.postgres.apply_env_overrides()
        self.validate()

    def validate_log_level(self):
        if self.log_level not in ["critical", "error", "warning", "info", "debug"]:
            raise ValueError(f"wrong log level {self.log_level}")
        if self.log_level == "debug":
            self.debug_log_level = True

    def validate(self):
        self.postgres.validate()
        self.replication.validate()
        self.fuzzer.validate()
        self.validate_log_level()
