"""
Voice pipeline tests.

PCM conversion and the playback state machine run without an audio device.
The agent session is driven with fake websocket, microphone and speaker
objects so barge-in, function calls and teardown order can be checked.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import numpy as np
import pytest

from core.config import AppSettings
from core.errors import MicrophoneError, MicrophoneErrorKind, SpeechProviderError
from core.observability.metrics import get_metrics
from voice.agent import FUNCTION_FAILED_CONTENT, AgentState, VoiceAgentSession
from voice.capture import classify_device_error
from voice.pcm import float_to_pcm16, pcm16_to_float
from voice.playback import START_THRESHOLD_SAMPLES, PCMPlaybackBuffer
from voice.settings import build_agent_settings, settings_for_user
from voice.token import AgentToken, grant_agent_token


class TestPCM:
    """Float <-> little-endian signed 16-bit conversion."""

    def test_quantization_is_asymmetric(self):
        frame = float_to_pcm16([0.0, 1.0, -1.0, 0.5])
        assert np.frombuffer(frame, dtype="<i2").tolist() == [0, 32767, -32768, 16383]

    def test_out_of_range_is_clipped(self):
        frame = float_to_pcm16([2.0, -3.0])
        assert np.frombuffer(frame, dtype="<i2").tolist() == [32767, -32768]

    def test_decode(self):
        samples = pcm16_to_float(np.array([0, 16384, -32768], dtype="<i2").tobytes())
        assert samples.dtype == np.float32
        assert samples.tolist() == [0.0, 0.5, -1.0]

    def test_odd_trailing_byte_dropped(self):
        assert len(pcm16_to_float(b"\x00\x01\x02")) == 1


class TestPlaybackBuffer:
    """Start gate, ordered reads, underrun padding, clear and compaction."""

    def test_silent_until_threshold(self):
        buffer = PCMPlaybackBuffer(start_threshold=4)
        buffer.append([0.1, 0.2, 0.3])
        assert not buffer.playing
        assert buffer.read(3).tolist() == [0.0, 0.0, 0.0]
        assert buffer.pending == 3

    def test_reads_in_order_and_pads_underrun(self):
        buffer = PCMPlaybackBuffer(start_threshold=4)
        buffer.append(np.array([0.1, 0.2, 0.3, 0.4], dtype=np.float32))
        assert buffer.playing

        first = buffer.read(3)
        second = buffer.read(3)

        np.testing.assert_allclose(first, [0.1, 0.2, 0.3], rtol=1e-6)
        np.testing.assert_allclose(second, [0.4, 0.0, 0.0], rtol=1e-6)
        # Underrun keeps playback armed
        assert buffer.playing

    def test_clear_drops_pending_and_rearms_gate(self):
        buffer = PCMPlaybackBuffer(start_threshold=4)
        buffer.append(np.ones(10, dtype=np.float32))
        buffer.read(2)

        assert buffer.clear() == 8
        assert not buffer.playing
        assert buffer.pending == 0
        assert not buffer.read(4).any()

    def test_compaction_preserves_unread_samples(self):
        buffer = PCMPlaybackBuffer(start_threshold=1, compact_threshold=8)
        buffer.append(np.arange(20, dtype=np.float32))

        buffer.read(10)
        assert buffer.pending == 10
        assert buffer.read(3).tolist() == [10.0, 11.0, 12.0]

    def test_appends_grow_capacity_by_doubling(self):
        """Backlog growth reallocates logarithmically, not once per frame."""
        buffer = PCMPlaybackBuffer(start_threshold=10_000, initial_capacity=4)

        for i in range(1000):
            buffer.append([float(i)])

        assert buffer.capacity == 1024
        assert buffer.reallocations == 8
        assert buffer.pending == 1000

    def test_large_frame_grows_in_one_step(self):
        buffer = PCMPlaybackBuffer(start_threshold=1, initial_capacity=4)
        buffer.append(np.arange(100, dtype=np.float32))

        assert buffer.capacity == 128
        assert buffer.reallocations == 1
        assert buffer.read(3).tolist() == [0.0, 1.0, 2.0]

    def test_compaction_and_clear_reuse_storage(self):
        buffer = PCMPlaybackBuffer(start_threshold=1, compact_threshold=8, initial_capacity=32)
        for _ in range(10):
            buffer.append(np.arange(3, dtype=np.float32))
            buffer.read(3)
        buffer.clear()
        buffer.append(np.ones(16, dtype=np.float32))

        assert buffer.reallocations == 0
        assert buffer.capacity == 32
        assert buffer.pending == 16

    def test_default_threshold_is_300ms_at_24khz(self):
        assert START_THRESHOLD_SAMPLES == 7200

    def test_append_pcm16(self):
        buffer = PCMPlaybackBuffer(start_threshold=2)
        buffer.append_pcm16(float_to_pcm16([0.5, -0.5]))
        assert buffer.playing
        assert buffer.pending == 2


class TestDeviceErrors:

    @pytest.mark.parametrize("exc,kind", [
        (PermissionError("nope"), MicrophoneErrorKind.PERMISSION_DENIED),
        (OSError("Access denied by system policy"), MicrophoneErrorKind.PERMISSION_DENIED),
        (ValueError("No default input device available"), MicrophoneErrorKind.NOT_FOUND),
        (OSError("Invalid device [PaErrorCode -9996]"), MicrophoneErrorKind.NOT_FOUND),
        (OSError("Internal PortAudio error"), MicrophoneErrorKind.UNAVAILABLE),
    ])
    def test_classify(self, exc, kind):
        assert classify_device_error(exc) == kind

    def test_user_message(self):
        error = MicrophoneError(MicrophoneErrorKind.NOT_FOUND, "device 3 missing")
        assert error.user_message.startswith("No microphone found")
        assert error.message == "device 3 missing"


class TestAgentSettings:

    def test_settings_shape(self):
        message = build_agent_settings([{"name": "addIncome"}], prompt="be brief")
        assert message["type"] == "Settings"
        assert message["audio"]["input"] == {"encoding": "linear16", "sample_rate": 16000}
        assert message["audio"]["output"]["sample_rate"] == 24000
        assert message["agent"]["think"]["functions"] == [{"name": "addIncome"}]
        assert message["agent"]["think"]["prompt"] == "be brief"

    def test_settings_for_user_exposes_every_tool(self, dispatcher):
        message = settings_for_user(dispatcher.registry, "user-1")
        names = {f["name"] for f in message["agent"]["think"]["functions"]}
        assert names == set(dispatcher.registry.names())
        assert "User ID: user-1" in message["agent"]["think"]["prompt"]


class TestToken:

    def test_not_configured(self):
        with pytest.raises(SpeechProviderError):
            asyncio.run(grant_agent_token(AppSettings(deepgram_api_key=None)))

    def test_temporary_token(self):
        granted = AgentToken(value="temp-123", temporary=True, expires_in=600)
        with patch("voice.token.request_token_grant", AsyncMock(return_value=granted)):
            token = asyncio.run(grant_agent_token(AppSettings(deepgram_api_key="dg-key")))
        assert token.value == "temp-123"
        assert token.temporary

    def test_refused_grant_falls_back_to_key(self):
        refused = AsyncMock(side_effect=SpeechProviderError("Token grant failed: 403", 403))
        with patch("voice.token.request_token_grant", refused):
            token = asyncio.run(grant_agent_token(AppSettings(deepgram_api_key="dg-key")))
        assert token.value == "dg-key"
        assert not token.temporary


# =============================================================================
# Agent session
# =============================================================================

class FakeWebSocket:
    def __init__(self, incoming=(), events=None):
        self.incoming = list(incoming)
        self.sent = []
        self.closed = False
        self.events = events if events is not None else []

    async def send(self, message):
        self.sent.append(message)

    async def close(self):
        self.closed = True
        self.events.append("ws.close")

    def __aiter__(self):
        return self._iterate()

    async def _iterate(self):
        for message in self.incoming:
            yield message

    def sent_json(self):
        return [json.loads(m) for m in self.sent if isinstance(m, str)]


class FakeMicrophone:
    def __init__(self, events, error=None):
        self.events = events
        self.error = error
        self.frames = asyncio.Queue()

    def start(self):
        if self.error:
            raise self.error
        self.events.append("mic.start")

    def stop(self):
        self.events.append("mic.stop")


class FakeSpeaker:
    def __init__(self, events):
        self.events = events

    def start(self):
        self.events.append("speaker.start")

    def close(self):
        self.events.append("speaker.close")


def _session(dispatcher, ws, events, playback=None, mic_error=None, on_transcript=None):
    async def connect(url, subprotocols=None):
        events.append(("connect", url, tuple(subprotocols)))
        return ws

    return VoiceAgentSession(
        dispatcher,
        "user-1",
        settings_message={"type": "Settings"},
        token="temp-123",
        ws_url="wss://agent.example/converse",
        playback=playback or PCMPlaybackBuffer(start_threshold=4),
        microphone=FakeMicrophone(events, error=mic_error),
        speaker=FakeSpeaker(events),
        on_transcript=on_transcript,
        connect=connect,
    )


class TestVoiceAgentSession:

    def test_start_sends_settings_first(self, dispatcher):
        events = []
        ws = FakeWebSocket(events=events)
        session = _session(dispatcher, ws, events)

        async def scenario():
            await session.start()
            state = session.state
            await session.stop()
            return state

        state = asyncio.run(scenario())

        assert state == AgentState.LISTENING
        assert ("connect", "wss://agent.example/converse", ("token", "temp-123")) in events
        assert ws.sent_json()[0] == {"type": "Settings"}
        assert get_metrics().snapshot()["voice"]["sessions_started"] == 1

    def test_microphone_failure_returns_to_idle(self, dispatcher):
        events = []
        error = MicrophoneError(MicrophoneErrorKind.PERMISSION_DENIED)
        session = _session(dispatcher, FakeWebSocket(events=events), events, mic_error=error)

        with pytest.raises(MicrophoneError):
            asyncio.run(session.start())

        assert session.state == AgentState.IDLE
        assert not any(isinstance(e, tuple) and e[0] == "connect" for e in events)

    def test_stop_tears_down_in_order(self, dispatcher):
        events = []
        session = _session(dispatcher, FakeWebSocket(events=events), events)

        async def scenario():
            await session.start()
            await session.stop()

        asyncio.run(scenario())

        teardown = [e for e in events if e in ("ws.close", "mic.stop", "speaker.close")]
        assert teardown == ["ws.close", "mic.stop", "speaker.close"]
        assert session.state == AgentState.IDLE

    def test_barge_in_clears_playback(self, dispatcher):
        events = []
        playback = PCMPlaybackBuffer(start_threshold=4)
        audio = float_to_pcm16(np.full(8, 0.25, dtype=np.float32))
        ws = FakeWebSocket(incoming=[audio, json.dumps({"type": "UserStartedSpeaking"})], events=events)
        session = _session(dispatcher, ws, events, playback=playback)
        observed = {}

        async def scenario():
            await session.start()
            await session.handle_frame(ws.incoming[0])
            observed["before"] = playback.pending
            await session.handle_frame(ws.incoming[1])
            observed["after"] = playback.pending
            observed["playing"] = playback.playing
            await session.stop()

        asyncio.run(scenario())

        assert observed == {"before": 8, "after": 0, "playing": False}
        assert get_metrics().snapshot()["voice"]["barge_ins"] == 1

    def test_function_call_is_dispatched_and_answered(self, store, dispatcher):
        store.insert("clients", {"user_id": "user-1", "name": "Acme Corp"})
        events = []
        request = {
            "type": "FunctionCallRequest",
            "functions": [
                {"id": "fc-1", "name": "searchClients", "arguments": json.dumps({"searchTerm": "Acme"}), "client_side": True},
                {"id": "fc-2", "name": "serverTool", "arguments": "{}", "client_side": False},
            ],
        }
        ws = FakeWebSocket(incoming=[json.dumps(request)], events=events)
        session = _session(dispatcher, ws, events)

        async def scenario():
            await session.start()
            await session.run()

        asyncio.run(scenario())

        responses = [m for m in ws.sent_json() if m["type"] == "FunctionCallResponse"]
        assert len(responses) == 1
        assert responses[0]["id"] == "fc-1"
        assert responses[0]["name"] == "searchClients"
        content = json.loads(responses[0]["content"])
        assert content["result"]["matches"][0]["name"] == "Acme Corp"
        assert session.state == AgentState.IDLE

    def test_malformed_arguments_answered_with_error(self, dispatcher):
        events = []
        ws = FakeWebSocket(events=events)
        session = _session(dispatcher, ws, events)

        async def scenario():
            await session.start()
            await session.handle_message({
                "type": "FunctionCallRequest",
                "functions": [{"id": "fc-1", "name": "addIncome", "arguments": "{oops", "client_side": True}],
            })
            await session.stop()

        asyncio.run(scenario())

        responses = [m for m in ws.sent_json() if m["type"] == "FunctionCallResponse"]
        assert responses[0]["content"] == FUNCTION_FAILED_CONTENT

    def test_transcript_turns(self, dispatcher):
        events = []
        seen = []
        session = _session(dispatcher, FakeWebSocket(events=events), events,
                           on_transcript=lambda role, text, new: seen.append((role, text, new)))

        async def scenario():
            await session.start()
            for message in (
                {"type": "ConversationText", "role": "user", "content": "Add income"},
                {"type": "ConversationText", "role": "assistant", "content": "Sure."},
                {"type": "ConversationText", "role": "assistant", "content": "How much?"},
                {"type": "AgentAudioDone"},
                {"type": "ConversationText", "role": "assistant", "content": "Still there?"},
            ):
                await session.handle_message(message)
            await session.stop()

        asyncio.run(scenario())

        assert [new for _, _, new in seen] == [True, True, False, True]
        assert session.transcript == [
            {"role": "user", "content": "Add income"},
            {"role": "assistant", "content": "Sure. How much?"},
            {"role": "assistant", "content": "Still there?"},
        ]

    def test_frames_after_stop_are_ignored(self, dispatcher):
        events = []
        playback = PCMPlaybackBuffer(start_threshold=4)
        session = _session(dispatcher, FakeWebSocket(events=events), events, playback=playback)

        async def scenario():
            await session.start()
            await session.stop()
            await session.handle_frame(float_to_pcm16(np.ones(8, dtype=np.float32)))

        asyncio.run(scenario())

        assert playback.pending == 0
