"""Relay participant: microphone capture, VAD, playback and room view."""

from vadrelay.client.capture import (
    CaptureError,
    CapturePipeline,
    CaptureStartError,
    VoiceUplink,
)
from vadrelay.client.playback import AudioSink, PlaybackQueue, SoundDeviceSink
from vadrelay.client.session import RoomClient
from vadrelay.client.ui import ConsoleRoomView, DebugLog, RoomView

__all__ = [
    "AudioSink",
    "CaptureError",
    "CapturePipeline",
    "CaptureStartError",
    "ConsoleRoomView",
    "DebugLog",
    "PlaybackQueue",
    "RoomClient",
    "RoomView",
    "SoundDeviceSink",
    "VoiceUplink",
]
