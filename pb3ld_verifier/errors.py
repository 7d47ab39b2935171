"""Exception hierarchy shared by the verifier.

Configuration errors are raised to the caller straight away and never
retried. Wire decode errors carry the raw buffer and the byte offset of the
part that failed to decode. Comparison failures are reported through
FuzzerError (see fuzzer.py) and cost the current session, not the process.
Stalls of the replication stream and a receive loop that can't be shut down
are fatal.
"""


class VerifierError(Exception):
    pass


class ConfigurationError(VerifierError, ValueError):
    pass


class BinaryOidRangesError(ConfigurationError):
    def __init__(self, message, value=None):
        if value is not None:
            message = f'{message} (while parsing binary_oid_ranges "{value}")'
        super().__init__(message)
        self.value = value


class InvalidListSyntax(BinaryOidRangesError):
    pass


class InvalidIntegerSyntax(BinaryOidRangesError):
    pass


class InvalidOidZero(BinaryOidRangesError):
    pass


class OidOutOfRange(BinaryOidRangesError):
    pass


class InvertedRange(BinaryOidRangesError):
    pass


class OverlappingRange(BinaryOidRangesError):
    pass


class ProtobufDecodeError(VerifierError):
    pass


class WireDecodeError(VerifierError):
    def __init__(self, message, offset=0, data=b''):
        super().__init__(message)
        self.offset = offset
        self.data = data

    def __str__(self):
        return f'{self.args[0]} (at byte {self.offset} of {len(self.data)})'


class MalformedLengthPrefix(WireDecodeError):
    pass


class TruncatedMessage(WireDecodeError):
    pass


class HeaderDecodeError(WireDecodeError):
    pass


class OffsetOutOfBounds(WireDecodeError):
    pass


class UnknownMessageType(WireDecodeError):
    pass


class PayloadDecodeError(WireDecodeError):
    pass


class ChannelClosed(VerifierError):
    pass


class ChannelTimeout(VerifierError):
    pass


class ReplicationStallError(VerifierError):
    pass


class ReceiverShutdownError(VerifierError):
    pass
