"""Voice - PCM audio pipeline and realtime agent session.

Key Features:
- PCM16 codec (16 kHz capture, 24 kHz playback)
- Playback buffer with a start gate, read cursor, compaction and barge-in clear
- Microphone capture via sounddevice with classified device errors
- Agent session over websockets, routing function calls to the dispatcher
"""

from voice.pcm import (
    INPUT_SAMPLE_RATE,
    OUTPUT_SAMPLE_RATE,
    float_to_pcm16,
    pcm16_to_float,
)
from voice.playback import PCMPlaybackBuffer, SpeakerOutput
from voice.capture import MicrophoneCapture
from voice.settings import build_agent_settings, settings_for_user
from voice.token import AgentToken, grant_agent_token
from voice.agent import AgentState, VoiceAgentSession

__all__ = [
    "INPUT_SAMPLE_RATE",
    "OUTPUT_SAMPLE_RATE",
    "float_to_pcm16",
    "pcm16_to_float",
    "PCMPlaybackBuffer",
    "SpeakerOutput",
    "MicrophoneCapture",
    "build_agent_settings",
    "settings_for_user",
    "AgentToken",
    "grant_agent_token",
    "AgentState",
    "VoiceAgentSession",
]
