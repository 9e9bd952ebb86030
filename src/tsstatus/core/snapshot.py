"""Build ServerSnapshots from a ServerQuery session.

A snapshot is assembled from a fixed command sequence on one session:
select the virtual server (once per session), read the server name, the
channel list and the client list, then refine each client with its own
detail lookup.
"""

import logging
from dataclasses import replace

from tsstatus.api.query import (
    QueryClient,
    QueryConnectionError,
    QueryError,
    QueryTimeoutError,
    find_payload,
    format_command,
    parse_record,
    parse_record_list,
)
from tsstatus.models.channel import Channel
from tsstatus.models.client import UNKNOWN_CHANNEL, VoiceClient
from tsstatus.models.snapshot import ServerSnapshot

logger = logging.getLogger(__name__)

DEFAULT_SERVER_NAME = "TeamSpeak"

# client_type=0 is a voice user, 1 is a query login
_VOICE_CLIENT_TYPE = "0"

_CLIENTLIST_FLAGS = ("-uid", "-away", "-voice", "-times")


def _parse_duration(raw: str) -> int | None:
    """Parse a millisecond duration field, None if absent or invalid."""
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value >= 0 else None


def parse_server_name(lines: list[str]) -> str:
    """Extract the virtual server name from a serverinfo response."""
    payload = find_payload(lines, "virtualserver_name")
    if not payload:
        return DEFAULT_SERVER_NAME
    return parse_record(payload).get("virtualserver_name") or DEFAULT_SERVER_NAME


def parse_channels(lines: list[str]) -> list[Channel]:
    """Parse a channellist response into channels with both id and name."""
    payload = find_payload(lines, "cid", "channel_name")
    channels: list[Channel] = []
    for record in parse_record_list(payload):
        cid = record.get("cid", "")
        name = record.get("channel_name", "")
        if cid and name:
            channels.append(Channel(id=cid, name=name))
    return channels


def parse_clients(lines: list[str], channel_names: dict[str, str]) -> list[VoiceClient]:
    """Parse a clientlist response into voice clients.

    Query logins and records missing an id, unique id or name are dropped.

    Args:
        lines: clientlist response body.
        channel_names: Channel id to name mapping.

    Returns:
        Voice clients in server order.
    """
    payload = find_payload(lines, "clid", "client_type")
    clients: list[VoiceClient] = []

    for record in parse_record_list(payload):
        if record.get("client_type") != _VOICE_CLIENT_TYPE:
            continue

        clid = record.get("clid", "")
        channel_id = record.get("cid", "")
        client = VoiceClient(
            id=clid,
            unique_id=record.get("client_unique_identifier", clid),
            name=record.get("client_nickname", ""),
            channel_id=channel_id,
            channel_name=channel_names.get(channel_id, UNKNOWN_CHANNEL),
            input_muted=(
                record.get("client_input_muted") == "1"
                or record.get("client_input_hardware") == "0"
            ),
            output_muted=(
                record.get("client_output_muted") == "1"
                or record.get("client_output_hardware") == "0"
            ),
            away=record.get("client_away") == "1",
            streaming=(
                record.get("client_is_streaming") == "1"
                or record.get("client_is_recording") == "1"
            ),
            connected_ms=_parse_duration(record.get("client_connected_time", "")),
        )
        if client.is_valid:
            clients.append(client)

    return clients


def apply_client_info(client: VoiceClient, lines: list[str]) -> VoiceClient:
    """Refine a client with fields from its clientinfo response."""
    payload = find_payload(lines, "client_type") or (lines[0] if lines else "")
    info = parse_record(payload)

    connected_ms = _parse_duration(
        info.get("connection_connected_time") or info.get("client_connected_time", "")
    )
    streaming = client.streaming
    if "client_is_streaming" in info or "client_is_recording" in info:
        streaming = (
            info.get("client_is_streaming") == "1" or info.get("client_is_recording") == "1"
        )

    return replace(
        client,
        connected_ms=connected_ms if connected_ms is not None else client.connected_ms,
        streaming=streaming,
    )


class SnapshotBuilder:
    """Builds snapshots over one query session.

    The builder is bound to a single session: the virtual server is
    selected on the first build and reused afterwards. Create a new
    builder for every new session.

    Example:
        async with QueryClient(host, 10022, user, password) as client:
            builder = SnapshotBuilder(client, server_port=9987, nickname="TS-Status")
            snapshot = await builder.build()
    """

    def __init__(self, client: QueryClient, server_port: int, nickname: str) -> None:
        """Initialize the builder.

        Args:
            client: Connected query client.
            server_port: Voice port of the virtual server to select.
            nickname: Display name announced for the query session.
        """
        self._client = client
        self._server_port = server_port
        self._nickname = nickname
        self._server_selected = False

    @property
    def client(self) -> QueryClient:
        """Return the query session this builder uses."""
        return self._client

    async def select_server(self) -> None:
        """Select the virtual server and announce the nickname."""
        await self._client.run_command(
            format_command("use", port=self._server_port, nickname=self._nickname)
        )
        self._server_selected = True
        logger.debug("Selected virtual server on port %d", self._server_port)

    async def build(self) -> ServerSnapshot:
        """Run the command sequence and assemble a snapshot.

        Returns:
            The snapshot for this poll.

        Raises:
            QueryConnectionError: If the session fails.
            QueryTimeoutError: If the server stops responding.
            QueryError: If a server-wide command is rejected.
        """
        if not self._server_selected:
            await self.select_server()

        server_name = parse_server_name(await self._client.run_command("serverinfo"))

        channels = parse_channels(
            await self._client.run_command(format_command("channellist", "-topic"))
        )
        channel_names = {channel.id: channel.name for channel in channels}

        clients = parse_clients(
            await self._client.run_command(format_command("clientlist", *_CLIENTLIST_FLAGS)),
            channel_names,
        )

        return ServerSnapshot(
            server_name=server_name,
            clients=tuple(await self._fill_client_details(clients)),
        )

    async def _fill_client_details(self, clients: list[VoiceClient]) -> list[VoiceClient]:
        """Refine each client with a clientinfo lookup.

        A failed lookup keeps the client's clientlist values. Once the
        session itself is gone the remaining lookups are skipped.
        """
        results: list[VoiceClient] = []

        for index, client in enumerate(clients):
            try:
                lines = await self._client.run_command(format_command("clientinfo", clid=client.id))
                results.append(apply_client_info(client, lines))
            except (QueryError, ValueError) as e:
                logger.debug("clientinfo failed for %s: %s", client.name, e)
                results.append(client)
            except (QueryConnectionError, QueryTimeoutError) as e:
                logger.debug("Skipping remaining clientinfo lookups: %s", e)
                results.extend(clients[index:])
                break

        return results
