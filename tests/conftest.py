"""Test fixtures for tsstatus tests."""

from collections.abc import Callable

import pytest
from PySide6.QtCore import QCoreApplication

from tsstatus.api.query import QueryConnectionError
from tsstatus.models import VoiceClient

# Realistic ServerQuery payloads (one line each, as the server sends them)
SERVERINFO_LINE = (
    "virtualserver_unique_identifier=x8Yv1Tr5a3vd2bqBb6s1U3qxKDE= "
    "virtualserver_name=Friday\\sNight\\sRaid virtualserver_platform=Linux "
    "virtualserver_clientsonline=3 virtualserver_maxclients=32"
)

CHANNELLIST_LINE = (
    "cid=1 pid=0 channel_order=0 channel_name=Lobby channel_topic=Welcome\\shere "
    "total_clients=1|"
    "cid=2 pid=0 channel_order=1 channel_name=AFK\\sCorner channel_topic total_clients=1"
)

CLIENTLIST_LINE = (
    "clid=5 cid=1 client_database_id=12 client_nickname=Alice client_type=0 "
    "client_away=0 client_away_message client_flag_talking=0 client_input_muted=0 "
    "client_output_muted=0 client_input_hardware=1 client_output_hardware=1 "
    "client_is_recording=0 client_unique_identifier=aliceUID= client_idle_time=120|"
    "clid=6 cid=1 client_database_id=1 "
    "client_nickname=serveradmin\\sfrom\\s127.0.0.1:53542 client_type=1 "
    "client_unique_identifier=serveradmin|"
    "clid=7 cid=2 client_database_id=14 client_nickname=Bob client_type=0 "
    "client_away=1 client_away_message=brb client_input_muted=1 client_output_muted=0 "
    "client_input_hardware=1 client_output_hardware=1 client_is_recording=0 "
    "client_unique_identifier=bobUID="
)

CLIENTINFO_ALICE_LINE = (
    "cid=1 client_idle_time=120 client_unique_identifier=aliceUID= "
    "client_nickname=Alice client_type=0 client_is_streaming=1 "
    "connection_connected_time=3723000"
)

CLIENTINFO_BOB_LINE = (
    "cid=2 client_idle_time=5 client_unique_identifier=bobUID= "
    "client_nickname=Bob client_type=0 client_is_recording=0 "
    "connection_connected_time=65000"
)


class FakeQueryClient:
    """Stand-in for QueryClient that answers commands from a script.

    Responses are looked up by exact command line, then by command name.
    A response is either a list of body lines or an exception to raise.
    """

    def __init__(self, responses: dict[str, list[str] | Exception]) -> None:
        self.responses = responses
        self.commands: list[str] = []
        self.connected = True
        self.entered = 0

    @property
    def is_connected(self) -> bool:
        return self.connected

    async def run_command(self, command: str) -> list[str]:
        self.commands.append(command)
        if not self.connected:
            raise QueryConnectionError("Not connected")

        response = self.responses.get(command)
        if response is None:
            response = self.responses.get(command.split(" ", 1)[0], [])
        if isinstance(response, Exception):
            if isinstance(response, QueryConnectionError | TimeoutError):
                self.connected = False
            raise response
        return list(response)

    async def __aenter__(self) -> "FakeQueryClient":
        self.entered += 1
        return self

    async def __aexit__(self, *_: object) -> None:
        self.connected = False


def standard_responses() -> dict[str, list[str] | Exception]:
    """Return responses for a server with Alice and Bob connected."""
    return {
        "use": [],
        "serverinfo": [SERVERINFO_LINE],
        "channellist": [CHANNELLIST_LINE],
        "clientlist": [CLIENTLIST_LINE],
        "clientinfo clid=5": [CLIENTINFO_ALICE_LINE],
        "clientinfo clid=7": [CLIENTINFO_BOB_LINE],
    }


@pytest.fixture
def qapp() -> QCoreApplication:
    """Create a Qt application for testing."""
    app = QCoreApplication.instance()
    if app is None:
        app = QCoreApplication([])
    return app


@pytest.fixture
def fake_client() -> FakeQueryClient:
    """Return a scripted query client for a server with two users."""
    return FakeQueryClient(standard_responses())


@pytest.fixture
def make_client() -> Callable[..., VoiceClient]:
    """Return a factory for VoiceClients with sensible defaults."""

    def _make_client(unique_id: str, name: str | None = None, **kwargs: object) -> VoiceClient:
        fields: dict[str, object] = {
            "id": kwargs.pop("id", unique_id),
            "unique_id": unique_id,
            "name": name or unique_id.capitalize(),
            "channel_id": "1",
            "channel_name": "Lobby",
        }
        fields.update(kwargs)
        return VoiceClient(**fields)  # type: ignore[arg-type]

    return _make_client

