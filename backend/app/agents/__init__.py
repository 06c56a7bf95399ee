"""Agents package - AI collaborators for summaries, tags and narration (Gemini, Claude)."""

from app.agents.speech_agent import SpeechAgent, SynthesizedAudio, get_speech_agent
from app.agents.text_agent import (
    ClaudeTextAgent,
    GeminiTextAgent,
    TextAgent,
    get_text_agent,
)

__all__ = [
    # Text generation
    "TextAgent",
    "GeminiTextAgent",
    "ClaudeTextAgent",
    "get_text_agent",
    # Speech synthesis
    "SpeechAgent",
    "SynthesizedAudio",
    "get_speech_agent",
]
