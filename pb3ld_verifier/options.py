import itertools
from dataclasses import dataclass, fields
from enum import Enum

from .errors import ConfigurationError
from .oid_ranges import OidRangeSet, parse_binary_oid_ranges


class TypeOidsMode(Enum):
    DISABLED = 'disabled'
    OMIT_NULLS = 'omit_nulls'
    FULL = 'full'


class FormatsMode(Enum):
    DISABLED = 'disabled'
    LIBPQ = 'libpq'
    OMIT_NULLS = 'omit_nulls'
    FULL = 'full'


DEFAULT_BINARY_OID_RANGES_CANDIDATES = ('', '1-200000', '17,20-23')


def parse_bool(value) -> bool:
    """Parse a boolean the way the server parses boolean GUC values.

    Accepts unique prefixes of true/false/yes/no, on/off with at least two
    letters and 1/0, case insensitively.
    """
    if isinstance(value, bool):
        return value
    if not isinstance(value, str):
        raise ConfigurationError(f'could not parse value "{value}" as a boolean')

    text = value.strip().lower()
    if text:
        if 'true'.startswith(text):
            return True
        if 'false'.startswith(text):
            return False
        if 'yes'.startswith(text):
            return True
        if 'no'.startswith(text):
            return False
        if len(text) >= 2:
            if 'on'.startswith(text):
                return True
            if 'off'.startswith(text):
                return False
        if text == '1':
            return True
        if text == '0':
            return False
    raise ConfigurationError(f'could not parse value "{value}" as a boolean')


def _parse_mode(enum_type, name, value):
    if value is None:
        raise ConfigurationError(f'{name} requires an argument')
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(value)
    except ValueError:
        raise ConfigurationError(f'"{value}" is not a valid value for parameter "{name}"')


@dataclass(frozen=True)
class ReplicationSlotOptions:
    """Options passed to the output plugin when streaming starts.

    The defaults match the plugin's own defaults, so an empty option set and
    ReplicationSlotOptions() describe the same stream.
    """
    enable_begin_messages: bool = False
    enable_commit_messages: bool = True
    enable_table_oids: bool = False
    type_oids_mode: TypeOidsMode = TypeOidsMode.DISABLED
    formats_mode: FormatsMode = FormatsMode.DISABLED
    binary_oid_ranges: str = ''

    BOOLEAN_OPTIONS = ('enable_begin_messages', 'enable_commit_messages', 'enable_table_oids')

    def __post_init__(self):
        for name in self.BOOLEAN_OPTIONS:
            object.__setattr__(self, name, parse_bool(getattr(self, name)))
        object.__setattr__(
            self, 'type_oids_mode',
            _parse_mode(TypeOidsMode, 'type_oids_mode', self.type_oids_mode),
        )
        object.__setattr__(
            self, 'formats_mode',
            _parse_mode(FormatsMode, 'formats_mode', self.formats_mode),
        )
        if self.binary_oid_ranges is None:
            raise ConfigurationError('binary_oid_ranges requires an argument')
        if not isinstance(self.binary_oid_ranges, str):
            object.__setattr__(self, 'binary_oid_ranges', str(self.binary_oid_ranges))
        # validated eagerly so that a bad value never reaches a session
        object.__setattr__(self, '_binary_ranges', parse_binary_oid_ranges(self.binary_oid_ranges))

    @classmethod
    def from_plugin_args(cls, args: dict) -> 'ReplicationSlotOptions':
        known = {f.name for f in fields(cls)}
        kwargs = {}
        for name, value in args.items():
            if name not in known:
                raise ConfigurationError(f'option "{name}" = "{value}" is not supported')
            if name in cls.BOOLEAN_OPTIONS and value is None:
                value = True
            kwargs[name] = value
        return cls(**kwargs)

    def to_plugin_args(self) -> dict:
        return {
            'enable_begin_messages': 'on' if self.enable_begin_messages else 'off',
            'enable_commit_messages': 'on' if self.enable_commit_messages else 'off',
            'enable_table_oids': 'on' if self.enable_table_oids else 'off',
            'type_oids_mode': self.type_oids_mode.value,
            'formats_mode': self.formats_mode.value,
            'binary_oid_ranges': self.binary_oid_ranges,
        }

    def binary_ranges(self) -> OidRangeSet:
        return self._binary_ranges

    def describe(self) -> str:
        return ', '.join(f"{k} '{v}'" for k, v in self.to_plugin_args().items())

    @classmethod
    def all_combinations(cls, binary_oid_ranges_candidates=DEFAULT_BINARY_OID_RANGES_CANDIDATES):
        for begin, commit, table_oids, type_oids_mode, formats_mode, ranges in itertools.product(
            (False, True),
            (False, True),
            (False, True),
            list(TypeOidsMode),
            list(FormatsMode),
            binary_oid_ranges_candidates,
        ):
            yield cls(
                enable_begin_messages=begin,
                enable_commit_messages=commit,
                enable_table_oids=table_oids,
                type_oids_mode=type_oids_mode,
                formats_mode=formats_mode,
                binary_oid_ranges=ranges,
            )
