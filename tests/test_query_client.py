"""Tests for the ServerQuery SSH client."""

import asyncio
from unittest.mock import AsyncMock, patch

import asyncssh
import pytest

from tsstatus.api.query import (
    ClientState,
    QueryClient,
    QueryConnectionError,
    QueryError,
    QueryTimeoutError,
)

BANNER = "TS3\n\rWelcome to the TeamSpeak 3 ServerQuery interface.\n\r"
OK = "error id=0 msg=ok\n\r"

# Marker chunk: the read blocks until cancelled
STALL = object()


class MockStdout:
    """Mock SSH process stdout serving scripted chunks."""

    def __init__(self, chunks: list[object]) -> None:
        self._chunks = list(chunks)
        self.reads = 0

    async def read(self, n: int = -1) -> str:
        """Return the next chunk, or "" at end of stream."""
        if not self._chunks:
            return ""
        chunk = self._chunks.pop(0)
        if chunk is STALL:
            await asyncio.Event().wait()
        self.reads += 1
        assert isinstance(chunk, str)
        return chunk


class MockStdin:
    """Mock SSH process stdin recording writes."""

    def __init__(self, stdout: MockStdout) -> None:
        self._stdout = stdout
        self.data: list[str] = []
        # Number of chunks the client had read at the time of each write
        self.reads_at_write: list[int] = []
        self.eof = False

    def write(self, data: str) -> None:
        """Record written data."""
        self.data.append(data)
        self.reads_at_write.append(self._stdout.reads)

    def write_eof(self) -> None:
        """Mark end of input."""
        self.eof = True


class MockProcess:
    """Mock interactive SSH shell process."""

    def __init__(self, chunks: list[object]) -> None:
        self.stdout = MockStdout(chunks)
        self.stdin = MockStdin(self.stdout)
        self.closed = False

    def close(self) -> None:
        """Mark as closed."""
        self.closed = True


class MockConnection:
    """Mock asyncssh client connection."""

    def __init__(self, process: MockProcess) -> None:
        self.process = process
        self.process_kwargs: dict[str, object] = {}
        self.close_calls = 0

    async def create_process(self, **kwargs: object) -> MockProcess:
        """Return the scripted process."""
        self.process_kwargs = kwargs
        return self.process

    def close(self) -> None:
        """Count close calls."""
        self.close_calls += 1

    async def wait_closed(self) -> None:
        """Mock wait_closed."""


@pytest.fixture
def mock_connection():
    """Create a mock SSH connection for scripted output chunks."""

    def _mock_connection(chunks: list[object]) -> MockConnection:
        return MockConnection(MockProcess(chunks))

    return _mock_connection


def _patch_connect(conn: MockConnection):
    return patch(
        "tsstatus.api.query.client.asyncssh.connect",
        new=AsyncMock(return_value=conn),
    )


class TestQueryClientInit:
    """Tests for QueryClient initialization."""

    def test_defaults(self) -> None:
        """Test client defaults."""
        client = QueryClient("ts.example.com")
        assert client.host == "ts.example.com"
        assert client.port == 10022
        assert client.state is ClientState.DISCONNECTED
        assert not client.is_connected

    def test_password_not_public(self) -> None:
        """Test that the password is kept private."""
        client = QueryClient("ts.example.com", username="serveradmin", password="secret")
        assert client.username == "serveradmin"
        assert not hasattr(client, "password")


class TestQueryClientConnect:
    """Tests for connecting."""

    @pytest.mark.asyncio
    async def test_connect_success(self, mock_connection) -> None:
        """Test successful connect opens a dumb-terminal shell."""
        conn = mock_connection([])
        with _patch_connect(conn) as connect:
            client = QueryClient("ts.example.com", 10022, "serveradmin", "secret")
            await client.connect()

        assert client.state is ClientState.READY
        assert client.is_connected
        connect.assert_awaited_once()
        args, kwargs = connect.call_args
        assert args == ("ts.example.com",)
        assert kwargs["port"] == 10022
        assert kwargs["username"] == "serveradmin"
        assert kwargs["password"] == "secret"
        assert kwargs["known_hosts"] is None
        assert conn.process_kwargs["term_type"] == "dumb"
        assert conn.process_kwargs["encoding"] == "utf-8"

    @pytest.mark.asyncio
    async def test_connect_refused(self) -> None:
        """Test that a socket error becomes QueryConnectionError."""
        with patch(
            "tsstatus.api.query.client.asyncssh.connect",
            new=AsyncMock(side_effect=OSError("Connection refused")),
        ):
            client = QueryClient("ts.example.com")
            with pytest.raises(QueryConnectionError, match="Connection refused"):
                await client.connect()

        assert client.state is ClientState.CLOSED
        assert not client.is_connected

    @pytest.mark.asyncio
    async def test_connect_auth_failure(self) -> None:
        """Test that an SSH login failure becomes QueryConnectionError."""
        with patch(
            "tsstatus.api.query.client.asyncssh.connect",
            new=AsyncMock(side_effect=asyncssh.PermissionDenied("Permission denied")),
        ):
            client = QueryClient("ts.example.com", username="serveradmin", password="wrong")
            with pytest.raises(QueryConnectionError):
                await client.connect()

        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_connect_timeout(self) -> None:
        """Test that a hanging handshake times out."""

        async def slow_connect(*_args: object, **_kwargs: object) -> None:
            await asyncio.sleep(10)

        with patch("tsstatus.api.query.client.asyncssh.connect", new=slow_connect):
            client = QueryClient("ts.example.com", connect_timeout=0.05)
            with pytest.raises(QueryConnectionError, match="timed out"):
                await client.connect()

        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_context_manager(self, mock_connection) -> None:
        """Test async context manager connects and closes."""
        conn = mock_connection([])
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                assert client.is_connected

        assert client.state is ClientState.CLOSED
        assert conn.process.closed
        assert conn.process.stdin.eof
        assert conn.close_calls == 1


class TestQueryClientCommands:
    """Tests for running commands."""

    @pytest.mark.asyncio
    async def test_run_command_returns_body(self, mock_connection) -> None:
        """Test that body lines are returned without the status line."""
        conn = mock_connection(["virtualserver_name=Test\n\r" + OK])
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                lines = await client.run_command("serverinfo")
                assert client.state is ClientState.READY

        assert lines == ["virtualserver_name=Test"]
        assert conn.process.stdin.data == ["serverinfo\r\n"]

    @pytest.mark.asyncio
    async def test_banner_precedes_first_response(self, mock_connection) -> None:
        """Test that the login banner arrives as body lines of the first command."""
        conn = mock_connection([BANNER + OK])
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                lines = await client.run_command("use port=9987")

        assert lines == ["TS3", "Welcome to the TeamSpeak 3 ServerQuery interface."]

    @pytest.mark.asyncio
    async def test_response_split_across_chunks(self, mock_connection) -> None:
        """Test framing when lines and terminators are split between reads."""
        conn = mock_connection(
            ["cid=1 channel_na", "me=Lobby\n", "\rerror id=0", " msg=ok\n\r"]
        )
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                lines = await client.run_command("channellist")

        assert lines == ["cid=1 channel_name=Lobby"]

    @pytest.mark.asyncio
    async def test_empty_body(self, mock_connection) -> None:
        """Test a command whose response is only a status line."""
        conn = mock_connection([OK])
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                assert await client.run_command("use port=9987") == []

    @pytest.mark.asyncio
    async def test_error_status_keeps_session(self, mock_connection) -> None:
        """Test that a rejected command raises but leaves the session usable."""
        conn = mock_connection(
            [
                "error id=512 msg=invalid\\sclientID\n\r",
                "clid=5 client_nickname=Alice\n\r" + OK,
            ]
        )
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                with pytest.raises(QueryError) as exc_info:
                    await client.run_command("clientinfo clid=99")
                assert exc_info.value.code == 512
                assert client.state is ClientState.READY

                lines = await client.run_command("clientinfo clid=5")

        assert lines == ["clid=5 client_nickname=Alice"]

    @pytest.mark.asyncio
    async def test_malformed_status(self, mock_connection) -> None:
        """Test that a status line without id raises QueryError."""
        conn = mock_connection(["error msg=ok\n\r"])
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                with pytest.raises(QueryError):
                    await client.run_command("serverinfo")

    @pytest.mark.asyncio
    async def test_inactivity_timeout_closes(self, mock_connection) -> None:
        """Test that a silent server raises QueryTimeoutError and closes the session."""
        conn = mock_connection(["virtualserver_name=Test\n\r", STALL])
        with _patch_connect(conn):
            client = QueryClient("ts.example.com", inactivity_timeout=0.05)
            await client.connect()
            with pytest.raises(QueryTimeoutError):
                await client.run_command("serverinfo")

            assert client.state is ClientState.CLOSED
            with pytest.raises(QueryConnectionError, match="Not connected"):
                await client.run_command("serverinfo")

    @pytest.mark.asyncio
    async def test_server_closes_channel(self, mock_connection) -> None:
        """Test that end of stream mid-response is a connection error."""
        conn = mock_connection(["virtualserver_name=Test\n\r"])
        with _patch_connect(conn):
            client = QueryClient("ts.example.com")
            await client.connect()
            with pytest.raises(QueryConnectionError, match="closed by server"):
                await client.run_command("serverinfo")

        assert client.state is ClientState.CLOSED
        assert conn.close_calls == 1

    @pytest.mark.asyncio
    async def test_run_command_not_connected(self) -> None:
        """Test running a command before connecting."""
        client = QueryClient("ts.example.com")
        with pytest.raises(QueryConnectionError, match="Not connected"):
            await client.run_command("serverinfo")

    @pytest.mark.asyncio
    async def test_commands_are_serialized(self, mock_connection) -> None:
        """Test that a second command is only sent after the first response."""
        conn = mock_connection(["one\n\r" + OK, "two\n\r" + OK])
        with _patch_connect(conn):
            async with QueryClient("ts.example.com") as client:
                first, second = await asyncio.gather(
                    client.run_command("first"),
                    client.run_command("second"),
                )

        assert first == ["one"]
        assert second == ["two"]
        assert conn.process.stdin.data == ["first\r\n", "second\r\n"]
        assert conn.process.stdin.reads_at_write == [0, 1]


class TestQueryClientClose:
    """Tests for closing."""

    @pytest.mark.asyncio
    async def test_close_idempotent(self, mock_connection) -> None:
        """Test that closing twice is safe."""
        conn = mock_connection([])
        with _patch_connect(conn):
            client = QueryClient("ts.example.com")
            await client.connect()
            await client.close()
            await client.close()

        assert client.state is ClientState.CLOSED
        assert conn.close_calls == 1

    @pytest.mark.asyncio
    async def test_close_never_connected(self) -> None:
        """Test closing a client that never connected."""
        client = QueryClient("ts.example.com")
        await client.close()
        assert client.state is ClientState.CLOSED

    @pytest.mark.asyncio
    async def test_reconnect_after_close(self, mock_connection) -> None:
        """Test that a closed client can connect again."""
        with _patch_connect(mock_connection([])):
            client = QueryClient("ts.example.com")
            await client.connect()
            await client.close()
            await client.connect()
            assert client.state is ClientState.READY
            await client.close()
