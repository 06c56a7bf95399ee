"""Speech synthesis agent - turns article summaries into narrated audio."""

import asyncio
import io
import logging
import wave
from dataclasses import dataclass
from functools import lru_cache

from google import genai
from google.genai import types
from tenacity import retry, stop_after_attempt, wait_exponential

from app.config import Settings, get_settings
from app.errors import DependencyError

logger = logging.getLogger(__name__)

# Gemini TTS returns raw 16-bit little-endian mono PCM at 24 kHz
PCM_SAMPLE_RATE = 24000
PCM_SAMPLE_WIDTH = 2
PCM_CHANNELS = 1


@dataclass
class SynthesizedAudio:
    """Encoded audio ready for object storage."""

    data: bytes
    duration_seconds: float
    content_type: str = "audio/wav"
    extension: str = "wav"


def pcm_to_wav(pcm: bytes) -> SynthesizedAudio:
    """Wrap raw PCM frames into a WAV container and compute the duration."""
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wav:
        wav.setnchannels(PCM_CHANNELS)
        wav.setsampwidth(PCM_SAMPLE_WIDTH)
        wav.setframerate(PCM_SAMPLE_RATE)
        wav.writeframes(pcm)

    frames = len(pcm) // (PCM_SAMPLE_WIDTH * PCM_CHANNELS)
    return SynthesizedAudio(data=buffer.getvalue(), duration_seconds=round(frames / PCM_SAMPLE_RATE, 2))


class SpeechAgent:
    """Narrates text with Gemini's prebuilt voices."""

    NARRATION_PROMPT = "Read the following article summary in a clear, calm, engaging voice:\n\n{text}"

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()
        self.client = genai.Client(api_key=self.settings.gemini_api_key)
        self.model = self.settings.tts_model
        self.voice = self.settings.tts_voice

    @retry(
        stop=stop_after_attempt(2),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _call_tts(self, text: str) -> bytes:
        """Call Gemini TTS with retry logic."""
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=self.NARRATION_PROMPT.format(text=text),
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(voice_name=self.voice)
                    )
                ),
            ),
        )
        parts = response.candidates[0].content.parts if response.candidates else []
        for part in parts or []:
            if part.inline_data and part.inline_data.data:
                return part.inline_data.data
        raise ValueError("No audio content received from TTS service")

    async def synthesize(self, text: str) -> SynthesizedAudio:
        """Synthesize ``text``; raises DependencyError on failure or timeout."""
        value = (text or "").strip()
        if not value:
            raise DependencyError("Nothing to synthesize")

        try:
            pcm = await asyncio.wait_for(
                self._call_tts(value), timeout=self.settings.speech_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise DependencyError("Speech synthesis timed out") from e
        except Exception as e:
            logger.warning("Speech synthesis failed: %s", e)
            raise DependencyError("Speech synthesis failed") from e

        audio = pcm_to_wav(pcm)
        logger.info("Synthesized %.1fs of audio (%d bytes)", audio.duration_seconds, len(audio.data))
        return audio


@lru_cache
def get_speech_agent() -> SpeechAgent:
    """Get the shared speech agent."""
    return SpeechAgent()
