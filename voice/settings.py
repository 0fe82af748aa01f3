"""Voice agent ``Settings`` handshake.

The first message on the agent channel describes the audio encoding in both
directions, the listen / think / speak providers, the prompt, and the
functions the agent may call back through the dispatcher.
"""

from typing import Any, Dict, List, Optional

from storage.owners import UserPreferences
from tools.registry import ToolRegistry
from voice.pcm import INPUT_SAMPLE_RATE, OUTPUT_SAMPLE_RATE


LISTEN_MODEL = "nova-3"
THINK_MODEL = "gpt-4o-mini"
SPEAK_MODEL = "aura-2-thalia-en"

VOICE_PROMPT = (
    "You are a finance assistant speaking with the user. Keep answers short and "
    "spoken-friendly. Before any change, call the tool with confirmed=false, read "
    "the preview back, and only call again with confirmed=true after the user agrees."
)


def build_voice_prompt(user_id: str, preferences: Optional[UserPreferences] = None) -> str:
    prefs = preferences or UserPreferences()
    return (
        f"{VOICE_PROMPT}\n\n"
        f"User ID: {user_id}\n"
        f"Base currency: {prefs.base_currency}\n"
        f"Default tax rate: {prefs.default_tax_rate}%\n"
        f"Payment terms: {prefs.payment_terms} days"
    )


def build_agent_settings(
    functions: List[Dict[str, Any]],
    prompt: str,
    think_model: str = THINK_MODEL,
    language: str = "en",
) -> Dict[str, Any]:
    return {
        "type": "Settings",
        "audio": {
            "input": {
                "encoding": "linear16",
                "sample_rate": INPUT_SAMPLE_RATE,
            },
            "output": {
                "encoding": "linear16",
                "sample_rate": OUTPUT_SAMPLE_RATE,
                "container": "none",
            },
        },
        "agent": {
            "language": language,
            "listen": {"provider": {"type": "deepgram", "model": LISTEN_MODEL}},
            "think": {
                "provider": {"type": "open_ai", "model": think_model, "temperature": 0.7},
                "prompt": prompt,
                "functions": functions,
            },
            "speak": {"provider": {"type": "deepgram", "model": SPEAK_MODEL}},
        },
    }


def settings_for_user(
    registry: ToolRegistry,
    user_id: str,
    preferences: Optional[UserPreferences] = None,
) -> Dict[str, Any]:
    """Settings message exposing every registered tool to the agent."""
    return build_agent_settings(
        functions=registry.agent_functions(),
        prompt=build_voice_prompt(user_id, preferences),
    )
