from .decoder import decode_wire_message, parse_header_length
from .messages import (
    BeginTransaction,
    CommitTransaction,
    DeleteDescription,
    FieldSetDescription,
    InsertDescription,
    MessageType,
    TableDescription,
    UpdateDescription,
    describe_message,
)
