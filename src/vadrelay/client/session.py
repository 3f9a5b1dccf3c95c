"""Room client: WebSocket participant with capture and playback.

Connects to the relay hub, joins rooms, runs the capture pipeline while
voice is on and plays relayed blocks from the other members of the room.
Every server event is dispatched to the room view, so the view always
mirrors the hub's membership and speaking state for the current room.
"""

import argparse
import asyncio
import logging
import sys
from collections.abc import Callable

import numpy as np
import websockets
from numpy.typing import NDArray
from websockets.asyncio.client import ClientConnection

from vadrelay.client.capture import CapturePipeline, CaptureStartError
from vadrelay.client.playback import PlaybackQueue, SoundDeviceSink
from vadrelay.client.ui import ConsoleRoomView, DebugLog, RoomView
from vadrelay.config import ClientConfig
from vadrelay.transport.protocol import (
    ErrorMessage,
    JoinRoomMessage,
    LeaveRoomMessage,
    ProtocolError,
    RelayMessage,
    RoomLeftMessage,
    RoomUsersMessage,
    SpeakingMessage,
    UpdateRoomsMessage,
    UserJoinedMessage,
    UserLeftMessage,
    UserSpeakingMessage,
    VoiceMessage,
    VoiceRelayMessage,
    YourIdMessage,
    decode_samples,
    encode_samples,
    parse_server_message,
)
from vadrelay.utils.logging import setup_logging

logger = logging.getLogger(__name__)

HELP_TEXT = """
Commands:
  /join <room> <name> - Join (or switch to) a room
  /leave              - Leave the current room
  /start              - Start voice chat (microphone)
  /stop               - Stop voice chat and leave the room
  /rooms              - List active rooms
  /users              - Show the current room's users
  /quit               - Exit client
  /help               - Show this help
"""


class RoomClient:
    """Relay participant.

    Implements the capture pipeline's uplink (``send_voice``,
    ``send_speaking``, ``send_leave``) on top of the WebSocket connection.
    """

    def __init__(
        self,
        config: ClientConfig,
        view: RoomView,
        playback: PlaybackQueue | None = None,
        capture_factory: Callable[..., CapturePipeline] | None = None,
    ) -> None:
        """Initialize room client.

        Args:
            config: Client configuration
            view: Display hooks
            playback: Playback queue (speaker output by default)
            capture_factory: Builds the capture pipeline from (config, uplink, view)
        """
        self.config = config
        self.view = view
        self.playback = playback or PlaybackQueue(SoundDeviceSink(config.playback))
        self._capture_factory = capture_factory or CapturePipeline

        self.identity: str | None = None
        self.room: str | None = None
        self.rooms: list[str] = []
        self.capture: CapturePipeline | None = None

        self._pending_room: str | None = None
        self._websocket: ClientConnection | None = None

    @property
    def is_connected(self) -> bool:
        """Whether the WebSocket connection is established."""
        return self._websocket is not None

    async def connect(self) -> None:
        """Open the WebSocket connection and start playback.

        Raises:
            OSError: If the server cannot be reached
        """
        self._websocket = await websockets.connect(
            self.config.server_url, max_size=None
        )
        logger.info(f"Connected to {self.config.server_url}")
        self.view.log(f"Connected to {self.config.server_url}")

        try:
            await self.playback.start()
        except Exception as e:
            logger.warning(f"Audio output unavailable, relayed voice will not play: {e}")
            self.view.log(f"Audio output unavailable: {e}")

    async def close(self) -> None:
        """Stop voice, stop playback and close the connection."""
        await self.stop_voice()
        await self.playback.stop()
        if self._websocket is not None:
            websocket, self._websocket = self._websocket, None
            await websocket.close()

    async def _send(self, message: RelayMessage) -> None:
        if self._websocket is None:
            raise ConnectionError("Not connected to relay server")
        try:
            await self._websocket.send(message.to_json())
        except websockets.exceptions.ConnectionClosed as e:
            raise ConnectionError(f"Connection closed: {e}") from e

    async def join_room(self, room: str, username: str) -> bool:
        """Request to join a room, leaving the current one implicitly.

        Returns:
            True if the request was sent
        """
        room = room.strip()
        username = username.strip()
        if not room or not username:
            self.view.log("Please enter both room name and username.")
            return False

        self._pending_room = room
        await self._send(JoinRoomMessage(room=room, username=username))
        self.view.log(f"Joining room: {room}")
        return True

    async def leave_room(self) -> None:
        """Leave the current room, stopping voice first if it is on."""
        if self.capture is not None:
            await self.stop_voice()
            return
        await self.send_leave()

    async def start_voice(self) -> bool:
        """Start microphone capture.

        Requires an identity assigned by the server. A media failure is
        reported through the view and leaves the client listening.

        Returns:
            True if capture started
        """
        if self.identity is None:
            self.view.log("Join a room before starting voice chat.")
            return False
        if self.capture is not None:
            return True

        capture = self._capture_factory(self.config, self, self.view)
        capture.identity = self.identity
        try:
            await capture.start()
        except CaptureStartError as e:
            logger.error(f"Error starting voice chat: {e}")
            self.view.log(f"Error starting voice chat: {e}")
            return False

        self.capture = capture
        return True

    async def stop_voice(self) -> None:
        """Stop microphone capture; the pipeline leaves the room on stop."""
        if self.capture is None:
            return
        capture, self.capture = self.capture, None
        await capture.stop()

    async def send_voice(self, samples: NDArray[np.float32]) -> None:
        # Samples come straight from the capture stream; skip re-validating them
        await self._send(VoiceMessage.model_construct(data=encode_samples(samples)))

    async def send_speaking(self, is_speaking: bool, energy: float) -> None:
        await self._send(SpeakingMessage(is_speaking=is_speaking, energy=energy))

    async def send_leave(self) -> None:
        await self._send(LeaveRoomMessage())

    async def handle_message(self, raw_message: str | bytes) -> None:
        """Dispatch one server event.

        Args:
            raw_message: Raw WebSocket payload
        """
        try:
            message = parse_server_message(raw_message)
        except ProtocolError as e:
            logger.warning(f"Invalid server message: {e}")
            return

        if isinstance(message, VoiceRelayMessage):
            try:
                samples = decode_samples(message.data)
            except ProtocolError as e:
                logger.warning(f"Undecodable voice block from {message.id}: {e}")
                return
            self.playback.enqueue(message.id, samples)

        elif isinstance(message, UserSpeakingMessage):
            self.view.set_speaking(message.id, message.is_speaking)
            self.view.update_meter(message.id, message.energy)

        elif isinstance(message, RoomUsersMessage):
            self.view.clear_users()
            for identity, info in message.users:
                self.view.add_user(identity, info.username)
                self.view.set_speaking(identity, info.is_speaking)
            self.view.log(f"Updated user list. Users in room: {len(message.users)}")

        elif isinstance(message, UserJoinedMessage):
            self.view.add_user(message.id, message.username)

        elif isinstance(message, UserLeftMessage):
            self.view.remove_user(message.id)

        elif isinstance(message, YourIdMessage):
            self.identity = message.id
            self.room = self._pending_room
            if self.capture is not None:
                self.capture.identity = message.id
            self.view.log(f"Received user ID: {message.id}")

        elif isinstance(message, RoomLeftMessage):
            self.room = None
            self.view.clear_users()
            self.view.log("Left the room.")

        elif isinstance(message, UpdateRoomsMessage):
            self.rooms = list(message.rooms)
            self.view.update_rooms(self.rooms)

        elif isinstance(message, ErrorMessage):
            logger.error(f"Server error [{message.code}]: {message.message}")
            self.view.log(f"Error: {message.message}")

    async def receive_loop(self) -> None:
        """Handle server events until the connection closes."""
        if self._websocket is None:
            raise ConnectionError("Not connected to relay server")

        try:
            async for raw_message in self._websocket:
                await self.handle_message(raw_message)
        except websockets.exceptions.ConnectionClosed:
            logger.info("Connection closed by server")
        finally:
            self.view.log("Disconnected from relay server.")


async def input_loop(client: RoomClient, view: ConsoleRoomView) -> None:
    """Read interactive commands from stdin."""
    print(HELP_TEXT)
    loop = asyncio.get_running_loop()

    while True:
        try:
            line = await loop.run_in_executor(None, input, "> ")
        except EOFError:
            break

        parts = line.strip().split()
        if not parts:
            continue
        command, args = parts[0].lower(), parts[1:]

        try:
            if command == "/quit":
                break
            elif command == "/help":
                print(HELP_TEXT)
            elif command == "/join":
                if len(args) < 2:
                    print("Usage: /join <room> <name>")
                    continue
                await client.join_room(args[0], " ".join(args[1:]))
            elif command == "/leave":
                await client.leave_room()
            elif command == "/start":
                await client.start_voice()
            elif command == "/stop":
                await client.stop_voice()
            elif command == "/rooms":
                print("Rooms: " + (", ".join(client.rooms) or "(none)"))
            elif command == "/users":
                print(view.render() or "(no users)")
            else:
                print(f"Unknown command: {command}. Type /help for available commands")
        except ConnectionError as e:
            logger.error(f"Connection lost: {e}")
            break


async def run_client(
    config: ClientConfig, room: str | None = None, username: str | None = None
) -> None:
    """Connect, optionally join a room, and run the interactive loop."""
    view = ConsoleRoomView(
        DebugLog(echo=True),
        display_floor_db=config.meter.display_floor_db,
        display_scale=config.meter.display_scale,
    )
    client = RoomClient(config, view)
    await client.connect()

    try:
        if room and username:
            await client.join_room(room, username)

        receiver = asyncio.create_task(client.receive_loop())
        commands = asyncio.create_task(input_loop(client, view))
        _, pending = await asyncio.wait(
            {receiver, commands}, return_when=asyncio.FIRST_COMPLETED
        )
        for task in pending:
            task.cancel()
    finally:
        await client.close()


def _parse_device(value: str | None) -> str | int | None:
    if value is None:
        return None
    return int(value) if value.isdigit() else value


def main() -> None:
    """Main entry point for the relay client."""
    parser = argparse.ArgumentParser(description="Voice activity relay client")
    parser.add_argument("--url", type=str, default=None, help="Relay server WebSocket URL")
    parser.add_argument("--room", type=str, default=None, help="Room to join on connect")
    parser.add_argument("--name", type=str, default=None, help="Display name")
    parser.add_argument(
        "--device", type=str, default=None, help="Audio device name or index (input and output)"
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    args = parser.parse_args()

    setup_logging("DEBUG" if args.verbose else "WARNING")

    config = ClientConfig.from_env(server_url=args.url)
    device = _parse_device(args.device)
    if device is not None:
        config.capture.device = device
        config.playback.device = device

    try:
        asyncio.run(run_client(config, room=args.room, username=args.name))
    except KeyboardInterrupt:
        print("\nExiting...")
    except OSError as e:
        logger.error(f"Client error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
