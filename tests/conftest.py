"""
Shared pytest fixtures for intro bot tests.

The fakes here stand in for Discord's voice transport, the sqlite store and
remote fetchers so the session logic can run on a plain event loop.
"""

import asyncio
import os
import sys
from typing import Dict, List, Optional, Tuple

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from module.intro_player.core.models import Intro, VoiceJoinEvent
from module.intro_player.utils.errors import DecodeError, PlaybackError, VoiceConnectionError


# ============================================================================
# Clock
# ============================================================================

class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 0.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    def set(self, value: float) -> None:
        self.now = value


# ============================================================================
# Audio
# ============================================================================

class FakeSource:
    """Stands in for a PCMVolumeTransformer."""

    def __init__(self, intro: Intro):
        self.intro = intro
        self.volume = intro.volume
        self.cleaned_up = 0

    def cleanup(self):
        self.cleaned_up += 1


class FakePipeline:
    """AudioPipeline replacement that never touches ffmpeg."""

    def __init__(self):
        self.opened: List[FakeSource] = []
        self.failing: Dict[int, Exception] = {}

    async def open(self, intro: Intro) -> FakeSource:
        error = self.failing.get(intro.id)
        if error is not None:
            raise error
        source = FakeSource(intro)
        self.opened.append(source)
        return source

    def fail(self, intro_id: int, error: Optional[Exception] = None) -> None:
        self.failing[intro_id] = error or DecodeError("cannot decode", reference=str(intro_id))


class FakeFetcher:
    """Asset fetcher that counts calls and can be held open with a gate."""

    def __init__(self, data: bytes = b"RIFF....WAVEfmt "):
        self.data = data
        self.calls: List[str] = []
        self.gate: Optional[asyncio.Event] = None
        self.error: Optional[Exception] = None
        self.delay = 0.0

    async def fetch(self, reference: str) -> bytes:
        self.calls.append(reference)
        if self.gate is not None:
            await self.gate.wait()
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.data


# ============================================================================
# Voice transport
# ============================================================================

class FakeConnection:
    """In-memory voice connection."""

    def __init__(self, transport: "FakeTransport", guild_id: int, channel_id: int):
        self.transport = transport
        self.guild_id = guild_id
        self.channel_id = channel_id
        self.connected = True
        self.played: List[FakeSource] = []
        self.moves: List[int] = []
        self.stopped = 0
        self.disconnected = False

    def is_connected(self) -> bool:
        return self.connected

    async def move_to(self, channel_id: int) -> None:
        if self.transport.move_error is not None:
            raise self.transport.move_error
        self.moves.append(channel_id)
        self.channel_id = channel_id

    async def play(self, source: FakeSource) -> None:
        if not self.connected:
            raise PlaybackError("voice client is not connected")

        transport = self.transport
        transport.playing[self.guild_id] = transport.playing.get(self.guild_id, 0) + 1
        transport.max_playing[self.guild_id] = max(
            transport.max_playing.get(self.guild_id, 0), transport.playing[self.guild_id]
        )
        try:
            if transport.play_gate is not None:
                await transport.play_gate.wait()
            else:
                await asyncio.sleep(0)
            if transport.play_error is not None:
                raise transport.play_error
            self.played.append(source)
            transport.played.append((self.guild_id, self.channel_id, source))
        finally:
            transport.playing[self.guild_id] -= 1

    def stop(self) -> None:
        self.stopped += 1

    async def disconnect(self) -> None:
        self.transport.disconnect_attempts += 1
        if self.transport.disconnect_gate is not None:
            await self.transport.disconnect_gate.wait()
        self.connected = False
        self.disconnected = True
        self.transport.disconnects.append(self.guild_id)


class FakeTransport:
    """Records connect attempts and playbacks per guild."""

    def __init__(self):
        self.connect_calls: List[Tuple[int, int]] = []
        self.connections: List[FakeConnection] = []
        self.disconnects: List[int] = []
        self.played: List[Tuple[int, int, FakeSource]] = []
        self.playing: Dict[int, int] = {}
        self.max_playing: Dict[int, int] = {}

        # Failure injection
        self.connect_errors: List[Exception] = []
        self.move_error: Optional[Exception] = None
        self.play_error: Optional[Exception] = None
        self.play_gate: Optional[asyncio.Event] = None
        self.connect_gate: Optional[asyncio.Event] = None
        self.disconnect_gate: Optional[asyncio.Event] = None
        self.disconnect_attempts = 0

    async def connect(self, guild_id: int, channel_id: int) -> FakeConnection:
        self.connect_calls.append((guild_id, channel_id))
        if self.connect_gate is not None:
            await self.connect_gate.wait()
        await asyncio.sleep(0)
        if self.connect_errors:
            raise self.connect_errors.pop(0)
        connection = FakeConnection(self, guild_id, channel_id)
        self.connections.append(connection)
        return connection

    def fail_next_connect(self, error: Optional[Exception] = None) -> None:
        self.connect_errors.append(error or VoiceConnectionError("handshake timed out"))

    def played_intro_ids(self, guild_id: Optional[int] = None) -> List[int]:
        return [
            source.intro.id for gid, _, source in self.played
            if guild_id is None or gid == guild_id
        ]


# ============================================================================
# Store
# ============================================================================

class FakeStore:
    """Binding and delay lookups backed by dicts."""

    def __init__(self):
        self.bindings: Dict[Tuple[int, int, int], List[Intro]] = {}
        self.delays: Dict[int, float] = {}
        self.lookup_calls: List[Tuple[int, int, int]] = []
        self.lookup_error: Optional[Exception] = None
        self.delay_error: Optional[Exception] = None

    def bind(self, user_id: int, guild_id: int, channel_id: int, intro: Intro) -> None:
        self.bindings.setdefault((user_id, guild_id, channel_id), []).append(intro)

    async def lookup_bindings(self, user_id: int, guild_id: int, channel_id: int) -> List[Intro]:
        self.lookup_calls.append((user_id, guild_id, channel_id))
        if self.lookup_error is not None:
            raise self.lookup_error
        return list(self.bindings.get((user_id, guild_id, channel_id), []))

    async def get_guild_delay(self, guild_id: int) -> float:
        if self.delay_error is not None:
            raise self.delay_error
        return self.delays.get(guild_id, 0)


class FakeCredentials:
    """Bot credential status toggled by tests."""

    def __init__(self, valid: bool = True):
        self.is_bot_credential_valid = valid
        self.reasons: List[str] = []

    def invalidate_bot_credential(self, reason: str) -> None:
        self.is_bot_credential_valid = False
        self.reasons.append(reason)


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def pipeline():
    return FakePipeline()


@pytest.fixture
def fetcher():
    return FakeFetcher()


@pytest.fixture
def credentials():
    return FakeCredentials()


@pytest.fixture
def make_intro():
    """Factory for Intro rows."""
    def _make(intro_id: int, guild_id: int = 7, volume: float = 1.0, filename: str = None, name: str = None):
        return Intro(
            id=intro_id,
            name=name or f"intro-{intro_id}",
            volume=volume,
            guild_id=guild_id,
            filename=filename or f"intro_{intro_id}.mp3",
        )
    return _make


@pytest.fixture
def make_event(clock):
    """Factory for voice join events stamped with the fake clock."""
    def _make(user_id: int, guild_id: int = 7, channel_id: int = 3, user_name: str = ""):
        return VoiceJoinEvent(
            user_id=user_id,
            guild_id=guild_id,
            channel_id=channel_id,
            timestamp=clock(),
            user_name=user_name,
        )
    return _make


@pytest.fixture
def wait_until():
    """Poll a predicate on the running loop until it holds."""
    async def _wait(predicate, timeout: float = 2.0):
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while not predicate():
            if loop.time() > deadline:
                raise AssertionError("condition not met before timeout")
            await asyncio.sleep(0.001)
    return _wait
