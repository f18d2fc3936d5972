"""
Tests for module/intro_player/core/session.py - GuildSession.
"""

import asyncio

import pytest
import pytest_asyncio

from module.intro_player.core.cooldown import CooldownGate
from module.intro_player.core.resolver import IntroResolver
from module.intro_player.core.session import GuildSession
from module.intro_player.core.state import PlaybackOutcome, SessionState
from module.intro_player.utils.errors import CredentialInvalidError, PlaybackError


@pytest_asyncio.fixture
async def make_session(transport, pipeline, store, clock):
    """Build sessions wired to the fakes; every session is closed on teardown."""
    sessions = []

    def _make(guild_id: int = 7, idle_timeout: float = 60, credentials=None, max_pending=None, cooldown=None):
        outcomes = []

        async def on_outcome(event, outcome):
            outcomes.append((event, outcome))

        session = GuildSession(
            guild_id=guild_id,
            transport=transport,
            pipeline=pipeline,
            resolver=IntroResolver(store),
            cooldown=cooldown or CooldownGate(store),
            credentials=credentials,
            idle_timeout=idle_timeout,
            max_pending=max_pending,
            clock=clock,
            on_outcome=on_outcome,
        )
        session.outcomes = outcomes
        sessions.append(session)
        return session

    yield _make

    for session in sessions:
        await session.close("test teardown")


def outcome_values(session):
    return [outcome for _, outcome in session.outcomes]


class TestGuildSessionPlayback:
    """Happy path and cooldown."""

    @pytest.mark.asyncio
    async def test_alice_cooldown_example(self, make_session, store, transport, clock, make_intro, make_event, wait_until):
        """Plays at t=0, is denied at t=5, plays again at t=12."""
        store.bind(1, 7, 3, make_intro(42, volume=0.8))
        store.delays[7] = 10
        session = make_session()

        session.enqueue(make_event(1, user_name="alice"))
        await wait_until(lambda: len(session.outcomes) == 1)

        assert outcome_values(session) == [PlaybackOutcome.PLAYED]
        assert transport.connect_calls == [(7, 3)]
        assert transport.played[0][2].volume == 0.8
        assert session.state.last_playback == 0.0

        clock.set(5)
        session.enqueue(make_event(1, user_name="alice"))
        await wait_until(lambda: len(session.outcomes) == 2)
        assert session.outcomes[-1][1] is PlaybackOutcome.COOLDOWN

        clock.set(12)
        session.enqueue(make_event(1, user_name="alice"))
        await wait_until(lambda: len(session.outcomes) == 3)

        assert session.outcomes[-1][1] is PlaybackOutcome.PLAYED
        assert session.cooldown.last_playback(7) == 12
        assert session.state.last_playback == 12
        assert transport.played_intro_ids() == [42, 42]
        # still in the channel, no second handshake
        assert len(transport.connect_calls) == 1
        assert session.state.state is SessionState.CONNECTED

    @pytest.mark.asyncio
    async def test_one_playback_at_a_time(self, make_session, store, transport, make_intro, make_event, wait_until):
        for user_id in (1, 2, 3):
            store.bind(user_id, 7, 3, make_intro(user_id * 10))
        transport.play_gate = asyncio.Event()
        session = make_session()

        for user_id in (1, 2, 3):
            session.enqueue(make_event(user_id))
        await wait_until(lambda: transport.playing.get(7) == 1)

        assert session.state.state is SessionState.PLAYING
        assert len(session.queue) == 2

        transport.play_gate.set()
        await wait_until(lambda: len(session.outcomes) == 3)

        assert transport.max_playing[7] == 1
        assert transport.played_intro_ids() == [10, 20, 30]

    @pytest.mark.asyncio
    async def test_only_latest_join_is_played(self, make_session, store, transport, make_intro, make_event, wait_until):
        """Rejoins while another intro plays collapse to the most recent one."""
        store.bind(1, 7, 3, make_intro(10))
        store.bind(2, 7, 3, make_intro(20))
        store.bind(2, 7, 4, make_intro(21))
        transport.play_gate = asyncio.Event()
        session = make_session()

        session.enqueue(make_event(1))
        await wait_until(lambda: transport.playing.get(7) == 1)
        session.enqueue(make_event(2, channel_id=3))
        session.enqueue(make_event(2, channel_id=4))
        transport.play_gate.set()
        await wait_until(lambda: len(session.outcomes) == 2)

        assert transport.played_intro_ids() == [10, 21]
        assert transport.connections[0].moves == [4]
        assert session.state.channel_id == 4


class TestGuildSessionFailures:
    """Every failure leaves the session able to take the next event."""

    @pytest.mark.asyncio
    async def test_no_binding_is_a_silent_noop(self, make_session, transport, make_event, wait_until):
        session = make_session()

        session.enqueue(make_event(1))
        await wait_until(lambda: len(session.outcomes) == 1)

        assert outcome_values(session) == [PlaybackOutcome.NO_INTRO]
        assert transport.connect_calls == []
        assert session.state.state is SessionState.IDLE
        assert session.state.channel_id is None

    @pytest.mark.asyncio
    async def test_connection_failure_drops_event_and_next_proceeds(
        self, make_session, store, transport, pipeline, make_intro, make_event, wait_until
    ):
        store.bind(1, 7, 3, make_intro(10))
        store.bind(2, 7, 3, make_intro(20))
        transport.fail_next_connect()
        session = make_session()

        session.enqueue(make_event(1))
        session.enqueue(make_event(2))
        await wait_until(lambda: len(session.outcomes) == 2)

        assert outcome_values(session) == [PlaybackOutcome.CONNECTION_FAILED, PlaybackOutcome.PLAYED]
        assert transport.connect_calls == [(7, 3), (7, 3)]
        assert transport.played_intro_ids() == [20]
        assert pipeline.opened[0].cleaned_up == 1

    @pytest.mark.asyncio
    async def test_asset_failure_skips_connection(self, make_session, store, transport, pipeline, make_intro, make_event, wait_until):
        store.bind(1, 7, 3, make_intro(10))
        pipeline.fail(10)
        session = make_session()

        session.enqueue(make_event(1))
        await wait_until(lambda: len(session.outcomes) == 1)

        assert outcome_values(session) == [PlaybackOutcome.ASSET_FAILED]
        assert transport.connect_calls == []
        assert session.cooldown.last_playback(7) is None

    @pytest.mark.asyncio
    async def test_playback_error_keeps_connection(self, make_session, store, transport, make_intro, make_event, wait_until):
        store.bind(1, 7, 3, make_intro(10))
        transport.play_error = PlaybackError("opus encoder failed")
        session = make_session()

        session.enqueue(make_event(1))
        await wait_until(lambda: len(session.outcomes) == 1)

        assert outcome_values(session) == [PlaybackOutcome.PLAYBACK_FAILED]
        assert session.state.state is SessionState.CONNECTED
        assert session.cooldown.last_playback(7) is None

    @pytest.mark.asyncio
    async def test_invalid_bot_credential_fails_fast(
        self, make_session, store, transport, credentials, make_intro, make_event, wait_until
    ):
        store.bind(1, 7, 3, make_intro(10))
        credentials.is_bot_credential_valid = False
        session = make_session(credentials=credentials)

        session.enqueue(make_event(1))
        await wait_until(lambda: len(session.outcomes) == 1)

        assert outcome_values(session) == [PlaybackOutcome.CREDENTIAL_INVALID]
        assert transport.connect_calls == []
        assert session.state.state is SessionState.IDLE

    @pytest.mark.asyncio
    async def test_rejected_credential_blocks_later_connects(
        self, make_session, store, transport, credentials, make_intro, make_event, wait_until
    ):
        store.bind(1, 7, 3, make_intro(10))
        store.bind(2, 7, 3, make_intro(20))
        transport.fail_next_connect(CredentialInvalidError("401 Unauthorized"))
        session = make_session(credentials=credentials)

        session.enqueue(make_event(1))
        session.enqueue(make_event(2))
        await wait_until(lambda: len(session.outcomes) == 2)

        assert outcome_values(session) == [
            PlaybackOutcome.CREDENTIAL_INVALID,
            PlaybackOutcome.CREDENTIAL_INVALID,
        ]
        assert len(transport.connect_calls) == 1
        assert credentials.reasons == ["401 Unauthorized"]

    @pytest.mark.asyncio
    async def test_unexpected_error_is_contained(self, make_session, store, transport, make_intro, make_event, wait_until):
        """A bug in one event must not kill the worker."""
        store.bind(2, 7, 3, make_intro(20))

        class ExplodingOnceCooldown(CooldownGate):
            exploded = False

            async def allow(self, guild_id, now):
                if not self.exploded:
                    self.exploded = True
                    raise RuntimeError("boom")
                return await super().allow(guild_id, now)

        session = make_session(cooldown=ExplodingOnceCooldown(store))
        session.enqueue(make_event(1))
        session.enqueue(make_event(2))
        await wait_until(lambda: len(session.outcomes) == 1)

        assert outcome_values(session) == [PlaybackOutcome.PLAYED]
        assert session.is_running
        assert transport.played_intro_ids() == [20]


class TestGuildSessionLifecycle:
    """Idle disconnect and shutdown."""

    @pytest.mark.asyncio
    async def test_idle_timeout_leaves_channel(self, make_session, store, transport, make_intro, make_event, wait_until):
        store.bind(1, 7, 3, make_intro(10))
        session = make_session(idle_timeout=0.01)

        session.enqueue(make_event(1))
        await wait_until(lambda: transport.disconnects == [7])

        assert session.state.state is SessionState.IDLE
        assert session.connection is None
        assert session.is_running

        # next join connects again
        session.enqueue(make_event(1))
        await wait_until(lambda: len(transport.connect_calls) == 2)

    @pytest.mark.asyncio
    async def test_close_cancels_playback_and_forces_idle(
        self, make_session, store, transport, pipeline, make_intro, make_event, wait_until
    ):
        store.bind(1, 7, 3, make_intro(10))
        store.bind(2, 7, 3, make_intro(20))
        transport.play_gate = asyncio.Event()
        session = make_session()

        session.enqueue(make_event(1))
        session.enqueue(make_event(2))
        await wait_until(lambda: transport.playing.get(7) == 1)

        await session.close("removed from guild")

        assert session.state.state is SessionState.IDLE
        assert session.is_closed
        assert not session.is_running
        assert len(session.queue) == 0
        assert transport.connections[0].disconnected
        assert pipeline.opened[0].cleaned_up >= 1
        assert transport.played == []

        session.enqueue(make_event(2))
        assert len(session.queue) == 0

    @pytest.mark.asyncio
    async def test_close_during_idle_disconnect_still_leaves_channel(
        self, make_session, store, transport, make_intro, make_event, wait_until
    ):
        store.bind(1, 7, 3, make_intro(10))
        transport.disconnect_gate = asyncio.Event()
        session = make_session(idle_timeout=0.01)

        session.enqueue(make_event(1))
        await wait_until(lambda: transport.disconnect_attempts == 1)

        closing = asyncio.create_task(session.close("shutdown"))
        # the idle disconnect is cancelled, close() disconnects again
        await wait_until(lambda: transport.disconnect_attempts == 2)
        transport.disconnect_gate.set()
        await closing

        assert session.state.state is SessionState.IDLE
        assert session.connection is None
        assert not transport.connections[0].is_connected()
        assert transport.disconnects == [7]

    @pytest.mark.asyncio
    async def test_close_cancels_pending_connect(
        self, make_session, store, transport, pipeline, make_intro, make_event, wait_until
    ):
        store.bind(1, 7, 3, make_intro(10))
        store.bind(2, 7, 3, make_intro(20))
        transport.connect_gate = asyncio.Event()
        session = make_session()

        session.enqueue(make_event(1))
        session.enqueue(make_event(2))
        await wait_until(lambda: transport.connect_calls == [(7, 3)])
        assert session.state.state is SessionState.CONNECTING

        await session.close("shutdown")

        assert session.state.state is SessionState.IDLE
        assert session.connection is None
        assert len(session.queue) == 0
        assert pipeline.opened[0].cleaned_up == 1
        assert transport.connections == []
        assert transport.played == []

    @pytest.mark.asyncio
    async def test_lost_connection_is_detected_before_next_event(
        self, make_session, store, transport, make_intro, make_event, wait_until
    ):
        store.bind(1, 7, 3, make_intro(10))
        session = make_session()

        session.enqueue(make_event(1))
        await wait_until(lambda: len(session.outcomes) == 1)
        transport.connections[0].connected = False

        session.enqueue(make_event(1))
        await wait_until(lambda: len(session.outcomes) == 2)

        assert len(transport.connect_calls) == 2
        assert session.state.state is SessionState.CONNECTED

    @pytest.mark.asyncio
    async def test_status_reports_counts(self, make_session, store, make_intro, make_event, wait_until):
        store.bind(1, 7, 3, make_intro(10))
        session = make_session()

        session.enqueue(make_event(1))
        session.enqueue(make_event(2))
        await wait_until(lambda: len(session.outcomes) == 2)

        status = session.get_status()
        assert status["guild_id"] == 7
        assert status["state"] == SessionState.CONNECTED.value
        assert status["outcomes"] == {
            PlaybackOutcome.PLAYED.value: 1,
            PlaybackOutcome.NO_INTRO.value: 1,
        }
        assert status["pending"] == 0
        assert status["running"] is True
