"""WebSocket message protocol definitions.

Defines Pydantic models for every relay event. Messages are JSON-encoded
text frames; the ``type`` field carries the event name and discriminates
the union. Payload keys use the camelCase names of the event catalog
(``isSpeaking``), exposed in Python as snake_case attributes.

Audio blocks travel as base64-encoded float32 little-endian PCM. The hub
validates the encoding but relays the payload string unmodified.
"""

import base64
import binascii
from typing import Annotated, Any, Final, Literal

import numpy as np
from numpy.typing import NDArray
from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError, field_validator

BYTES_PER_SAMPLE: Final[int] = 4  # float32
MAX_BLOCK_SAMPLES: Final[int] = 16384


class ProtocolError(ValueError):
    """Raised when a wire message cannot be decoded or validated."""

    def __init__(self, message: str, code: str = "INVALID_MESSAGE") -> None:
        super().__init__(message)
        self.code = code


def encode_samples(samples: NDArray[np.floating]) -> str:
    """Encode a mono block as base64 float32 little-endian PCM.

    Args:
        samples: Audio samples

    Returns:
        Base64 string
    """
    pcm = np.ascontiguousarray(samples, dtype="<f4").tobytes()
    return base64.b64encode(pcm).decode("ascii")


def decode_samples(data: str) -> NDArray[np.float32]:
    """Decode a base64 float32 PCM block.

    Args:
        data: Base64 string produced by ``encode_samples``

    Returns:
        float32 sample array

    Raises:
        ProtocolError: If the payload is not valid base64 float32 PCM
    """
    try:
        pcm = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ProtocolError(f"Failed to decode audio block: {e}", code="INVALID_AUDIO") from e

    if len(pcm) == 0 or len(pcm) % BYTES_PER_SAMPLE != 0:
        raise ProtocolError(
            f"Invalid audio block size: {len(pcm)} bytes is not a whole number of float32 samples",
            code="INVALID_AUDIO",
        )

    if len(pcm) // BYTES_PER_SAMPLE > MAX_BLOCK_SAMPLES:
        raise ProtocolError(
            f"Audio block too large: {len(pcm) // BYTES_PER_SAMPLE} samples "
            f"(max {MAX_BLOCK_SAMPLES})",
            code="INVALID_AUDIO",
        )

    return np.frombuffer(pcm, dtype="<f4").astype(np.float32)


class RelayMessage(BaseModel):
    """Base for all relay messages."""

    model_config = ConfigDict(populate_by_name=True)

    def to_json(self) -> str:
        """Serialize using wire (alias) field names."""
        return self.model_dump_json(by_alias=True)


# Client → Server


class JoinRoomMessage(RelayMessage):
    """Client → Server: join (or switch to) a room."""

    type: Literal["join room"] = "join room"
    room: str = Field(..., min_length=1, max_length=128, description="Case-sensitive room name")
    username: str = Field(..., min_length=1, max_length=128, description="Display name")


class LeaveRoomMessage(RelayMessage):
    """Client → Server: leave the current room."""

    type: Literal["leave room"] = "leave room"


class VoiceMessage(RelayMessage):
    """Client → Server: one audio block classified as speech."""

    type: Literal["voice"] = "voice"
    data: str = Field(..., min_length=1, description="Base64 float32 PCM block")

    @field_validator("data")
    @classmethod
    def validate_data(cls, v: str) -> str:
        """Validate the block decodes to float32 samples."""
        decode_samples(v)
        return v


class SpeakingMessage(RelayMessage):
    """Client → Server: speaking state changed."""

    type: Literal["speaking"] = "speaking"
    is_speaking: bool = Field(..., alias="isSpeaking")
    energy: float = Field(..., allow_inf_nan=False, description="Block energy in dBFS")


# Server → Client


class ParticipantInfo(RelayMessage):
    """Snapshot entry describing one room member."""

    username: str
    is_speaking: bool = Field(default=False, alias="isSpeaking")
    energy: float = 0.0


class VoiceRelayMessage(RelayMessage):
    """Server → Client: audio block from another room member."""

    type: Literal["voice"] = "voice"
    id: str = Field(..., description="Sender identity")
    data: str = Field(..., description="Base64 float32 PCM block, as sent")


class UserSpeakingMessage(RelayMessage):
    """Server → Client: a room member's speaking state."""

    type: Literal["user speaking"] = "user speaking"
    id: str
    is_speaking: bool = Field(..., alias="isSpeaking")
    energy: float


class RoomUsersMessage(RelayMessage):
    """Server → joining client: current room membership snapshot."""

    type: Literal["room users"] = "room users"
    users: list[tuple[str, ParticipantInfo]] = Field(default_factory=list)


class UserJoinedMessage(RelayMessage):
    """Server → other room members: a participant joined."""

    type: Literal["user joined"] = "user joined"
    id: str
    username: str


class UserLeftMessage(RelayMessage):
    """Server → remaining room members: a participant left."""

    type: Literal["user left"] = "user left"
    id: str


class RoomLeftMessage(RelayMessage):
    """Server → leaving client: leave acknowledged."""

    type: Literal["room left"] = "room left"


class YourIdMessage(RelayMessage):
    """Server → joining client: assigned identity."""

    type: Literal["your id"] = "your id"
    id: str


class UpdateRoomsMessage(RelayMessage):
    """Server → all clients: current room directory."""

    type: Literal["update rooms"] = "update rooms"
    rooms: list[str] = Field(default_factory=list)


class ErrorMessage(RelayMessage):
    """Server → Client: a message from this client was rejected."""

    type: Literal["error"] = "error"
    message: str = Field(..., description="Error description")
    code: str = Field(default="INTERNAL_ERROR", description="Error code")


ClientMessage = Annotated[
    JoinRoomMessage | LeaveRoomMessage | VoiceMessage | SpeakingMessage,
    Field(discriminator="type"),
]

ServerMessage = Annotated[
    VoiceRelayMessage
    | UserSpeakingMessage
    | RoomUsersMessage
    | UserJoinedMessage
    | UserLeftMessage
    | RoomLeftMessage
    | YourIdMessage
    | UpdateRoomsMessage
    | ErrorMessage,
    Field(discriminator="type"),
]

_client_adapter: TypeAdapter[Any] = TypeAdapter(ClientMessage)
_server_adapter: TypeAdapter[Any] = TypeAdapter(ServerMessage)


def _parse(adapter: TypeAdapter[Any], raw: str | bytes) -> Any:
    try:
        return adapter.validate_json(raw)
    except ValidationError as e:
        # Surface the first problem only
        first = e.errors()[0]
        location = ".".join(str(part) for part in first.get("loc", ())) or "message"
        cause = first.get("ctx", {}).get("error")
        code = cause.code if isinstance(cause, ProtocolError) else "INVALID_MESSAGE"
        raise ProtocolError(f"Invalid message ({location}): {first.get('msg')}", code=code) from e


def parse_client_message(
    raw: str | bytes,
) -> JoinRoomMessage | LeaveRoomMessage | VoiceMessage | SpeakingMessage:
    """Decode a client → server message.

    Raises:
        ProtocolError: If the message is not valid JSON or fails validation
    """
    return _parse(_client_adapter, raw)  # type: ignore[no-any-return]


def parse_server_message(raw: str | bytes) -> RelayMessage:
    """Decode a server → client message.

    Raises:
        ProtocolError: If the message is not valid JSON or fails validation
    """
    return _parse(_server_adapter, raw)  # type: ignore[no-any-return]
