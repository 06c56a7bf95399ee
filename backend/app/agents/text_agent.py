"""Text generation agent - summaries and tags for catalog items.

Two providers are supported, selected by ``settings.llm_provider``: Gemini
(default) and Claude. Both share the prompts and the reply parsing.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from functools import lru_cache

import anthropic
from google import genai
from google.genai import types
from tenacity import retry, stop_after_attempt, wait_exponential

from app.config import Settings, get_settings
from app.errors import DependencyError

logger = logging.getLogger(__name__)


class TextAgent(ABC):
    """Provider-agnostic part of the summarizer; subclasses implement ``_generate``."""

    SUMMARY_PROMPT = """Summarize the following article in approximately {max_words} words.
Make it engaging and informative, suitable for someone who wants a quick overview.
Focus on the key points and main ideas. Reply with the summary text only.

{content}"""

    TAGS_PROMPT = """Analyze the following content and generate {max_tags} relevant tags or keywords.
Return only the tags as a comma-separated list, nothing else.

Content:
{content}"""

    # Keep prompts well inside the context window of the cheap models
    MAX_CONTENT_CHARS = 30000

    def __init__(self, settings: Settings | None = None):
        self.settings = settings or get_settings()

    @abstractmethod
    async def _generate(self, prompt: str) -> str:
        """Return the raw model reply for one prompt."""

    async def _complete(self, prompt: str, operation: str) -> str:
        """Run one generation under the configured timeout, normalizing failures."""
        try:
            text = await asyncio.wait_for(
                self._generate(prompt), timeout=self.settings.text_timeout_seconds
            )
        except asyncio.TimeoutError as e:
            raise DependencyError(f"Text generation timed out ({operation})") from e
        except DependencyError:
            raise
        except Exception as e:
            logger.warning("Text generation failed (%s): %s", operation, e)
            raise DependencyError(f"Text generation failed ({operation})") from e

        text = (text or "").strip()
        if not text:
            raise DependencyError(f"Text generation returned nothing ({operation})")
        return text

    async def summarize(self, content: str, max_words: int | None = None) -> str:
        """Generate a bounded-length summary of ``content``."""
        max_words = max_words or self.settings.summary_max_words
        prompt = self.SUMMARY_PROMPT.format(
            max_words=max_words, content=content[: self.MAX_CONTENT_CHARS]
        )
        summary = await self._complete(prompt, "summary")
        logger.info("Generated summary (%d chars)", len(summary))
        return summary

    async def generate_tags(self, content: str, max_tags: int | None = None) -> list[str]:
        """Generate up to ``max_tags`` tags for ``content``."""
        max_tags = max_tags or self.settings.max_tags
        prompt = self.TAGS_PROMPT.format(max_tags=max_tags, content=content[: self.MAX_CONTENT_CHARS])
        reply = await self._complete(prompt, "tags")
        tags = parse_tags(reply, max_tags)
        logger.info("Generated tags: %s", tags)
        return tags


def parse_tags(reply: str, max_tags: int) -> list[str]:
    """Parse a comma-separated model reply into a clean, de-duplicated tag list."""
    tags: list[str] = []
    seen: set[str] = set()
    for raw in reply.replace("\n", ",").split(","):
        tag = raw.strip().strip("\"'`#*-").strip()
        if not tag or tag.lower() in seen:
            continue
        seen.add(tag.lower())
        tags.append(tag)
    return tags[:max_tags]


class GeminiTextAgent(TextAgent):
    """Summarizer backed by Gemini."""

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.client = genai.Client(api_key=self.settings.gemini_api_key)
        self.model = self.settings.gemini_text_model

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, prompt: str) -> str:
        """Call Gemini API with retry logic."""
        response = await self.client.aio.models.generate_content(
            model=self.model,
            contents=prompt,
            config=types.GenerateContentConfig(
                temperature=0.3,
                max_output_tokens=1024,
            ),
        )
        return response.text or ""


class ClaudeTextAgent(TextAgent):
    """Summarizer backed by Claude."""

    def __init__(self, settings: Settings | None = None):
        super().__init__(settings)
        self.client = anthropic.AsyncAnthropic(api_key=self.settings.anthropic_api_key)
        self.model = self.settings.anthropic_text_model

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _generate(self, prompt: str) -> str:
        """Call Claude API with retry logic."""
        response = await self.client.messages.create(
            model=self.model,
            max_tokens=1024,
            messages=[{"role": "user", "content": prompt}],
        )
        return "".join(block.text for block in response.content if block.type == "text")


@lru_cache
def get_text_agent() -> TextAgent:
    """Get text agent based on configured LLM provider."""
    settings = get_settings()

    if settings.llm_provider == "anthropic":
        return ClaudeTextAgent(settings)
    return GeminiTextAgent(settings)
