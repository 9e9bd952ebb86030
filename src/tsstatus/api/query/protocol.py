"""TeamSpeak ServerQuery protocol parsing utilities.

ServerQuery uses a simple line-based text protocol:
- Commands are sent as plain text lines terminated by CRLF
- Responses are records of space-separated "key=value" pairs
- List responses separate records with "|"
- Every response ends with a status line: "error id=<code> msg=<message>"
- Values are escaped so spaces, pipes and control characters never
  collide with the delimiters

Reference: TeamSpeak 3 Server Query Manual
"""

from dataclasses import dataclass

# Every response is terminated by a status line starting with this prefix
STATUS_PREFIX = "error "

# Decoding substitutions, applied in this exact order
_DECODE_TABLE: tuple[tuple[str, str], ...] = (
    ("\\s", " "),
    ("\\p", "|"),
    ("\\\\", "\\"),
    ("\\/", "/"),
    ("\\n", "\n"),
    ("\\r", "\r"),
    ("\\t", "\t"),
)

# Encoding substitutions; backslash must be escaped first
_ENCODE_TABLE: tuple[tuple[str, str], ...] = (
    ("\\", "\\\\"),
    ("/", "\\/"),
    (" ", "\\s"),
    ("|", "\\p"),
    ("\n", "\\n"),
    ("\r", "\\r"),
    ("\t", "\\t"),
)


class QueryError(Exception):
    """ServerQuery protocol error (non-zero or malformed status line)."""

    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"Query command failed ({code}): {message}")


@dataclass(frozen=True)
class QueryStatus:
    """A parsed status line.

    Attributes:
        code: Numeric status code (0 means success).
        message: Human-readable status message.
    """

    code: int
    message: str = ""

    @property
    def is_success(self) -> bool:
        """Return True if the status reports success."""
        return self.code == 0


def decode_value(raw: str) -> str:
    """Reverse the ServerQuery escaping of a single field value.

    Args:
        raw: Escaped value as received from the server.

    Returns:
        The decoded value.
    """
    value = raw
    for escaped, literal in _DECODE_TABLE:
        value = value.replace(escaped, literal)
    return value


def encode_value(text: str) -> str:
    """Escape a value for use as a command parameter.

    Args:
        text: Plain text value.

    Returns:
        Escaped value safe to embed in a command line.
    """
    value = text
    for literal, escaped in _ENCODE_TABLE:
        value = value.replace(literal, escaped)
    return value


def parse_record(line: str) -> dict[str, str]:
    """Parse one "key=value key=value" record.

    Args:
        line: A single record (one line or one "|" segment).

    Returns:
        Dictionary of decoded values. Keys without "=" map to "".
    """
    record: dict[str, str] = {}

    for token in line.strip().split(" "):
        if not token:
            continue
        key, sep, value = token.partition("=")
        record[key] = decode_value(value) if sep else ""

    return record


def parse_record_list(line: str) -> list[dict[str, str]]:
    """Parse a "|"-separated list of records.

    Args:
        line: Payload line from a list command.

    Returns:
        List of records, empty for an empty or status line.
    """
    if not line or line.startswith(STATUS_PREFIX):
        return []
    return [parse_record(segment) for segment in line.split("|")]


def find_payload(lines: list[str], *keys: str) -> str:
    """Return the first body line carrying all of the given keys.

    Banner or echoed command lines may precede the real payload,
    so callers locate it by content instead of position.

    Args:
        lines: Response body lines.
        *keys: Field names that must all appear as "key=".

    Returns:
        The matching line, or "" if none matches.
    """
    markers = [f"{key}=" for key in keys]
    for line in lines:
        if all(marker in line for marker in markers):
            return line
    return ""


def is_status_line(line: str) -> bool:
    """Return True if the line terminates a response."""
    return line.startswith(STATUS_PREFIX)


def parse_status(line: str) -> QueryStatus:
    """Parse and validate a status line.

    Args:
        line: The terminal "error id=... msg=..." line.

    Returns:
        QueryStatus for a successful response.

    Raises:
        QueryError: If the status is malformed or reports a failure.
    """
    record = parse_record(line)
    raw_code = record.get("id", "")
    message = record.get("msg") or "Unknown query error"

    try:
        code = int(raw_code)
    except ValueError:
        raise QueryError(-1, f"Malformed status line: {line!r}") from None

    if code != 0:
        raise QueryError(code, message)

    return QueryStatus(code=code, message=record.get("msg", ""))


def format_command(command: str, *flags: str, **params: str | int) -> str:
    """Format a ServerQuery command.

    Args:
        command: The command name.
        *flags: Option flags (e.g. "-uid"), emitted after the parameters.
        **params: Command parameters, escaped with encode_value.

    Returns:
        Formatted command string (without line terminator).
    """
    parts = [command]
    parts.extend(f"{key}={encode_value(str(value))}" for key, value in params.items())
    parts.extend(flags)
    return " ".join(parts)


class LineBuffer:
    """Receive buffer that splits a text stream into response lines.

    Lines end with "\\n", "\\r", or either paired with the other as a
    two-character terminator. Extracted lines are stripped and empty
    lines are skipped.

    Example:
        buffer = LineBuffer()
        buffer.feed("virtualserver_name=Test\\n\\rerror id=0 msg=ok\\n\\r")
        buffer.next_line()  # "virtualserver_name=Test"
    """

    def __init__(self) -> None:
        """Initialize an empty buffer."""
        self._data = ""

    @property
    def pending(self) -> int:
        """Return the number of buffered characters not yet consumed."""
        return len(self._data)

    def feed(self, text: str) -> None:
        """Append received text to the buffer."""
        self._data += text

    def clear(self) -> None:
        """Drop all buffered text."""
        self._data = ""

    def next_line(self) -> str | None:
        """Extract the next non-empty line.

        Returns:
            The stripped line, or None if no complete line is buffered.
        """
        while True:
            idx_n = self._data.find("\n")
            idx_r = self._data.find("\r")
            if idx_n == -1 and idx_r == -1:
                return None

            if idx_n == -1:
                idx = idx_r
            elif idx_r == -1:
                idx = idx_n
            else:
                idx = min(idx_n, idx_r)

            consume = idx + 1
            if self._data[idx : idx + 2] in ("\r\n", "\n\r"):
                consume = idx + 2

            line = self._data[:idx].strip()
            self._data = self._data[consume:]

            if line:
                return line
