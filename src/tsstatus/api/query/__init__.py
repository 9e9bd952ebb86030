"""TeamSpeak ServerQuery client over SSH."""

from tsstatus.api.query.client import (
    ClientState,
    QueryClient,
    QueryConnectionError,
    QueryTimeoutError,
)
from tsstatus.api.query.protocol import (
    LineBuffer,
    QueryError,
    QueryStatus,
    decode_value,
    encode_value,
    find_payload,
    format_command,
    parse_record,
    parse_record_list,
    parse_status,
)

__all__ = [
    "ClientState",
    "LineBuffer",
    "QueryClient",
    "QueryConnectionError",
    "QueryError",
    "QueryStatus",
    "QueryTimeoutError",
    "decode_value",
    "encode_value",
    "find_payload",
    "format_command",
    "parse_record",
    "parse_record_list",
    "parse_status",
]
