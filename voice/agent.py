"""Realtime voice agent session.

One duplex websocket carries the whole conversation:

- outbound: the ``Settings`` handshake, then raw PCM16 microphone frames
  (binary), plus ``FunctionCallResponse`` messages (JSON)
- inbound: raw PCM16 agent speech (binary) and JSON events

States:
    IDLE -> CONNECTING -> LISTENING <-> THINKING <-> SPEAKING -> IDLE

Barge-in: ``UserStartedSpeaking`` clears the playback buffer before any later
audio frame is handled, so stale agent speech is never rendered.

Usage:
    session = VoiceAgentSession(dispatcher, user_id, settings_message, token.value)
    await session.start()
    await session.run()      # until the channel closes or stop() is called
"""

import asyncio
import json
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

import websockets

from core.config import DEFAULT_VOICE_AGENT_WS_URL
from core.errors import MicrophoneError
from core.observability.logging import get_logger, with_correlation
from core.observability.metrics import get_metrics
from orchestration.dispatcher import Dispatcher
from voice.capture import MicrophoneCapture
from voice.playback import PCMPlaybackBuffer, SpeakerOutput


logger = get_logger(__name__)

FUNCTION_FAILED_CONTENT = json.dumps({"error": "Function call failed"})


class AgentState(str, Enum):
    IDLE = "idle"
    CONNECTING = "connecting"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"


TranscriptCallback = Callable[[str, str, bool], None]


class VoiceAgentSession:
    """Client side of one voice conversation."""

    def __init__(
        self,
        dispatcher: Dispatcher,
        user_id: str,
        settings_message: Dict[str, Any],
        token: str,
        ws_url: str = DEFAULT_VOICE_AGENT_WS_URL,
        playback: Optional[PCMPlaybackBuffer] = None,
        microphone: Optional[MicrophoneCapture] = None,
        speaker: Optional[SpeakerOutput] = None,
        on_transcript: Optional[TranscriptCallback] = None,
        connect: Callable = websockets.connect,
    ):
        self.dispatcher = dispatcher
        self.user_id = user_id
        self.settings_message = settings_message
        self.token = token
        self.ws_url = ws_url
        self.playback = playback or PCMPlaybackBuffer()
        self.microphone = microphone or MicrophoneCapture()
        self.speaker = speaker if speaker is not None else SpeakerOutput(self.playback)
        self.on_transcript = on_transcript
        self._connect = connect
        self.metrics = get_metrics()

        self.state = AgentState.IDLE
        self.ws = None
        self._sender: Optional[asyncio.Task] = None
        self._closed = False
        self._last_role: Optional[str] = None
        self._turn_reset = False
        self.transcript: List[Dict[str, str]] = []

    def _set_state(self, state: AgentState) -> None:
        if state != self.state:
            logger.debug("Voice agent state", extra_fields={"from": self.state.value, "to": state.value})
        self.state = state

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Acquire the microphone, open the channel, send ``Settings``.

        Raises ``MicrophoneError`` (state returns to idle) or the websocket's
        connection error.
        """
        if self.state != AgentState.IDLE:
            return
        self._closed = False
        self._set_state(AgentState.CONNECTING)

        try:
            self.microphone.start()
        except MicrophoneError as e:
            logger.warning("Voice session not started", extra_fields={"kind": e.error_kind.value})
            self._set_state(AgentState.IDLE)
            raise

        try:
            self.ws = await self._connect(self.ws_url, subprotocols=["token", self.token])
            await self.ws.send(json.dumps(self.settings_message))
        except (OSError, websockets.exceptions.WebSocketException):
            logger.exception("Voice agent connection failed")
            await self.stop()
            raise

        self.speaker.start()
        self._sender = asyncio.create_task(self._send_microphone())
        self._set_state(AgentState.LISTENING)
        self.metrics.record_voice_event("session_started")
        logger.info("Voice agent session started")

    async def run(self) -> None:
        """Handle inbound frames until the channel closes."""
        if self.ws is None:
            return
        with with_correlation(user_id=self.user_id, channel="voice"):
            try:
                async for message in self.ws:
                    await self.handle_frame(message)
            except websockets.exceptions.ConnectionClosedError as e:
                logger.warning("Voice agent channel closed with error", extra_fields={"code": e.code})
            finally:
                await self.stop()

    async def stop(self) -> None:
        """Tear down in order: channel, capture task, microphone, speaker."""
        if self._closed and self.state == AgentState.IDLE:
            return
        self._closed = True

        ws, self.ws = self.ws, None
        if ws is not None:
            await ws.close()

        sender, self._sender = self._sender, None
        if sender is not None and sender is not asyncio.current_task():
            sender.cancel()
            try:
                await sender
            except asyncio.CancelledError:
                pass

        self.microphone.stop()
        self.speaker.close()
        self.playback.clear()
        self._set_state(AgentState.IDLE)
        logger.info("Voice agent session stopped")

    async def _send_microphone(self) -> None:
        while True:
            frame = await self.microphone.frames.get()
            if self.ws is None:
                return
            try:
                await self.ws.send(frame)
            except websockets.exceptions.ConnectionClosed:
                return

    # -------------------------------------------------------------------------
    # Inbound
    # -------------------------------------------------------------------------

    async def handle_frame(self, message) -> None:
        # Late frames after stop() never touch devices or the buffer
        if self._closed:
            return
        if isinstance(message, (bytes, bytearray)):
            if message:
                self.playback.append_pcm16(bytes(message))
            return
        try:
            data = json.loads(message)
        except (TypeError, ValueError):
            logger.warning("Unparseable agent message", extra_fields={"preview": str(message)[:100]})
            return
        if isinstance(data, dict):
            await self.handle_message(data)

    async def handle_message(self, data: Dict[str, Any]) -> None:
        kind = data.get("type")

        if kind == "UserStartedSpeaking":
            dropped = self.playback.clear()
            self.metrics.record_voice_event("barge_in")
            logger.debug("Barge-in", extra_fields={"dropped_samples": dropped})
            self._set_state(AgentState.LISTENING)

        elif kind == "ConversationText":
            role = data.get("role", "")
            content = data.get("content", "")
            is_new_turn = self._turn_reset or role != self._last_role
            self._last_role = role
            self._turn_reset = False
            self._record_transcript(role, content, is_new_turn)
            if role == "user":
                self._set_state(AgentState.THINKING)
            elif role == "assistant":
                self._set_state(AgentState.SPEAKING)

        elif kind == "AgentAudioDone":
            self._set_state(AgentState.LISTENING)
            self._turn_reset = True

        elif kind == "FunctionCallRequest":
            self._set_state(AgentState.THINKING)
            await self._handle_function_calls(data.get("functions") or [])

        elif kind == "Error":
            logger.error("Voice agent error", extra_fields={"detail": data.get("description") or data.get("message")})

        elif kind in ("Welcome", "SettingsApplied"):
            logger.info(f"Voice agent {kind}")

    def _record_transcript(self, role: str, content: str, is_new_turn: bool) -> None:
        if is_new_turn or not self.transcript:
            self.transcript.append({"role": role, "content": content})
        else:
            self.transcript[-1]["content"] += f" {content}"
        if self.on_transcript:
            self.on_transcript(role, content, is_new_turn)

    async def _handle_function_calls(self, functions: List[Dict[str, Any]]) -> None:
        for func in functions:
            if not func.get("client_side"):
                continue

            content = FUNCTION_FAILED_CONTENT
            try:
                parameters = json.loads(func.get("arguments") or "{}")
                result = await self.dispatcher.dispatch(
                    func["name"],
                    parameters,
                    user_id=self.user_id,
                    channel="voice",
                    call_id=func.get("id"),
                )
                content = json.dumps(result)
            except (KeyError, TypeError, ValueError):
                logger.exception("Function call failed", extra_fields={"function": func.get("name")})

            self.metrics.record_voice_event("function_call")
            await self._send_json({
                "type": "FunctionCallResponse",
                "id": func.get("id"),
                "name": func.get("name"),
                "content": content,
            })

    async def _send_json(self, payload: Dict[str, Any]) -> None:
        if self.ws is None:
            return
        try:
            await self.ws.send(json.dumps(payload))
        except websockets.exceptions.ConnectionClosed:
            logger.warning("Channel closed before response was sent", extra_fields={"type": payload.get("type")})
