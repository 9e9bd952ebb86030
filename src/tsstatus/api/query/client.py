"""Async TeamSpeak ServerQuery client over SSH.

This module provides an asyncio-based ServerQuery client following the same
patterns as the other protocol clients: one connection, one command in
flight, responses framed by a terminal status line.

Example:
    async with QueryClient("ts.example.com", 10022, "serveradmin", "secret") as client:
        lines = await client.run_command("serverinfo")
        print(parse_record(find_payload(lines, "virtualserver_name")))
"""

import asyncio
import enum
import logging
from typing import Self

import asyncssh

from tsstatus.api.query.protocol import LineBuffer, is_status_line, parse_status

logger = logging.getLogger(__name__)

DEFAULT_PORT = 10022
CONNECT_TIMEOUT = 10.0
INACTIVITY_TIMEOUT = 7.0
READ_CHUNK_SIZE = 4096
LINE_TERMINATOR = "\r\n"


class QueryConnectionError(ConnectionError):
    """Failed to connect or lost the connection to the query interface."""


class QueryTimeoutError(TimeoutError):
    """No data arrived from the server within the inactivity window."""


class ClientState(enum.Enum):
    """Lifecycle of a query session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    BUSY = "busy"
    CLOSED = "closed"


class QueryClient:
    """Async ServerQuery client over an interactive SSH shell.

    The shell channel is a single ordered byte stream shared by all
    commands, so commands are strictly serialized: a second caller waits
    until the current response has been fully read.

    Attributes:
        host: Server hostname or IP.
        port: ServerQuery SSH port (default 10022).
        username: Query login name.
    """

    def __init__(
        self,
        host: str,
        port: int = DEFAULT_PORT,
        username: str = "",
        password: str = "",
        connect_timeout: float = CONNECT_TIMEOUT,
        inactivity_timeout: float = INACTIVITY_TIMEOUT,
    ) -> None:
        """Initialize the query client.

        Args:
            host: Server hostname or IP.
            port: ServerQuery SSH port.
            username: Query login name.
            password: Query login password.
            connect_timeout: Seconds allowed for connect and login.
            inactivity_timeout: Seconds to wait for new data mid-response.
        """
        self.host = host
        self.port = port
        self.username = username
        self._password = password
        self._connect_timeout = connect_timeout
        self._inactivity_timeout = inactivity_timeout

        self._conn: asyncssh.SSHClientConnection | None = None
        self._process: asyncssh.SSHClientProcess[str] | None = None
        self._buffer = LineBuffer()
        self._lock = asyncio.Lock()
        self._state = ClientState.DISCONNECTED

    @property
    def state(self) -> ClientState:
        """Return the current session state."""
        return self._state

    @property
    def is_connected(self) -> bool:
        """Return True if the session can accept commands."""
        return self._state in (ClientState.READY, ClientState.BUSY)

    async def connect(self) -> None:
        """Open the SSH session and start the query shell.

        Raises:
            QueryConnectionError: If the handshake, login or shell fails,
                or the connect timeout is exceeded.
        """
        if self.is_connected:
            return

        self._state = ClientState.CONNECTING
        self._buffer.clear()

        try:
            await asyncio.wait_for(self._open_session(), timeout=self._connect_timeout)
        except TimeoutError as e:
            await self.close()
            raise QueryConnectionError(
                f"Connection to {self.host}:{self.port} timed out"
            ) from e
        except (OSError, asyncssh.Error) as e:
            await self.close()
            raise QueryConnectionError(f"Failed to connect to {self.host}:{self.port}: {e}") from e

        self._state = ClientState.READY
        logger.info("Connected to ServerQuery at %s:%d as %s", self.host, self.port, self.username)

    async def _open_session(self) -> None:
        """Authenticate and open the interactive shell channel."""
        # Query servers use self-signed host keys; no known_hosts check
        self._conn = await asyncssh.connect(
            self.host,
            port=self.port,
            username=self.username,
            password=self._password,
            known_hosts=None,
        )
        self._process = await self._conn.create_process(
            term_type="dumb",
            encoding="utf-8",
            errors="replace",
        )

    async def close(self) -> None:
        """Close the shell channel and the SSH connection.

        Safe to call repeatedly; never raises.
        """
        process, conn = self._process, self._conn
        self._process = None
        self._conn = None
        self._buffer.clear()
        was_open = self._state in (ClientState.READY, ClientState.BUSY)
        self._state = ClientState.CLOSED

        if process is not None:
            try:
                process.stdin.write_eof()
                process.close()
            except (OSError, asyncssh.Error) as e:
                logger.debug("Expected error closing query shell: %s", e)

        if conn is not None:
            try:
                conn.close()
                await asyncio.wait_for(conn.wait_closed(), timeout=1.0)
            except (OSError, TimeoutError, asyncssh.Error) as e:
                logger.debug("Expected error closing SSH connection: %s", e)
            except Exception as e:  # noqa: BLE001
                logger.warning("Unexpected error closing SSH connection: %s", e)

        if was_open:
            logger.info("Disconnected from ServerQuery at %s:%d", self.host, self.port)

    async def __aenter__(self) -> Self:
        """Async context manager entry."""
        await self.connect()
        return self

    async def __aexit__(self, *_: object) -> None:
        """Async context manager exit."""
        await self.close()

    async def _wait_for_data(self) -> None:
        """Read at least one more chunk into the buffer.

        Raises:
            QueryTimeoutError: If nothing arrives within the inactivity window.
            QueryConnectionError: If the server closed the channel.
        """
        if self._process is None:
            raise QueryConnectionError("Not connected")

        try:
            chunk = await asyncio.wait_for(
                self._process.stdout.read(READ_CHUNK_SIZE),
                timeout=self._inactivity_timeout,
            )
        except TimeoutError:
            raise QueryTimeoutError("Timed out waiting for query response") from None
        except (OSError, asyncssh.Error) as e:
            raise QueryConnectionError(f"Query channel failed: {e}") from e

        if not chunk:
            raise QueryConnectionError("Query channel closed by server")
        self._buffer.feed(chunk)

    async def _read_until_status(self) -> tuple[list[str], str]:
        """Read response lines until the terminal status line.

        Returns:
            Tuple of (body lines, status line).
        """
        lines: list[str] = []
        while True:
            line = self._buffer.next_line()
            if line is None:
                await self._wait_for_data()
                continue
            if is_status_line(line):
                return lines, line
            lines.append(line)

    async def run_command(self, command: str) -> list[str]:
        """Send one command and read its full response.

        Args:
            command: Command line without terminator.

        Returns:
            Response body lines, without the status line.

        Raises:
            QueryConnectionError: If not connected or the channel fails.
            QueryTimeoutError: If the server stops responding.
            QueryError: If the status line reports an error or is malformed.
        """
        async with self._lock:
            if self._state is not ClientState.READY or self._process is None:
                raise QueryConnectionError("Not connected")

            logger.debug("Query command: %s", command)
            self._state = ClientState.BUSY

            try:
                self._process.stdin.write(f"{command}{LINE_TERMINATOR}")
                lines, status_line = await self._read_until_status()
            except (QueryConnectionError, QueryTimeoutError):
                await self.close()
                raise
            except (OSError, asyncssh.Error) as e:
                await self.close()
                raise QueryConnectionError(f"Query channel failed: {e}") from e
            except BaseException:
                # A half-read response must never leak into the next command
                await self.close()
                raise

            # The response is fully consumed here, so the stream stays in sync
            self._state = ClientState.READY
            parse_status(status_line)
            return lines
