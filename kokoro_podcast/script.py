"""Dialogue script generation.

Turns note content into an ordered list of host/guest turns using an
OpenAI-compatible chat completion endpoint.
"""

import json
import logging
import re
from dataclasses import dataclass
from typing import Optional, List, Dict, Any

from openai import OpenAI

from kokoro_podcast.jobs.models import DialogueTurn, PodcastFormat, Speaker
from kokoro_podcast.jobs.pipeline import ScriptGenerationError

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class LengthHint:
    target_words: int
    description: str
    focus: str


LENGTH_HINTS: Dict[PodcastFormat, LengthHint] = {
    # ~150 spoken words per minute
    PodcastFormat.SHORT: LengthHint(
        target_words=600,
        description="3-5 minute podcast focusing on key points only",
        focus="Focus ONLY on the most important key points",
    ),
    PodcastFormat.LONG: LengthHint(
        target_words=1350,
        description="8-10 minute podcast with detailed discussion and examples",
        focus="Provide detailed explanations with examples and context",
    ),
}

SYSTEM_PROMPT = """You are an expert podcast script writer. Convert the provided notes into a natural, engaging two-person podcast dialogue between a HOST and a GUEST.

Guidelines:
- Target length: {target_words} words ({description})
- The HOST asks insightful questions and guides the conversation
- The GUEST explains concepts clearly and provides examples
- Make it conversational and natural, not robotic
- Use simple language that's easy to understand when spoken
- Break down complex topics into digestible segments
- {focus}

Respond with JSON only, in this shape:
{{"dialogue": [{{"speaker": "host", "text": "..."}}, {{"speaker": "guest", "text": "..."}}]}}
Alternate between host and guest."""

USER_PROMPT = """Convert these notes into a {description}:

{content}

Remember: Target {target_words} words total across all dialogue segments."""

_JSON_OBJECT = re.compile(r"\{.*\}", re.DOTALL)


def parse_dialogue(text: str) -> List[DialogueTurn]:
    """Parse the model reply into dialogue turns.

    Accepts ``{"dialogue": [...]}`` or a bare list, optionally wrapped in
    extra text.

    Raises:
        ScriptGenerationError: If the reply has no usable turns
    """
    text = (text or "").strip()
    try:
        data: Any = json.loads(text)
    except json.JSONDecodeError:
        match = _JSON_OBJECT.search(text)
        if not match:
            raise ScriptGenerationError("Model reply is not JSON")
        try:
            data = json.loads(match.group(0))
        except json.JSONDecodeError as e:
            raise ScriptGenerationError(f"Model reply is not valid JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("dialogue", data.get("segments"))
    if not isinstance(data, list):
        raise ScriptGenerationError("Model reply has no dialogue list")

    turns = []
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            raise ScriptGenerationError(f"Dialogue segment {index} is not an object")
        speaker = str(item.get("speaker", "")).strip().lower()
        text_value = str(item.get("text", "")).strip()
        try:
            speaker_enum = Speaker(speaker)
        except ValueError:
            raise ScriptGenerationError(f"Dialogue segment {index} has unknown speaker: {speaker!r}")
        if not text_value:
            continue
        turns.append(DialogueTurn(speaker=speaker_enum, text=text_value))

    if not turns:
        raise ScriptGenerationError("Model returned an empty dialogue")
    return turns


class ScriptGenerator:
    """Script generation stage backed by the OpenAI chat API."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4.1",
        base_url: Optional[str] = None,
        temperature: float = 0.7,
        timeout: float = 120.0,
        client: Optional[OpenAI] = None
    ):
        self.model = model
        self.temperature = temperature
        self.timeout = timeout
        self._client = client
        self._api_key = api_key
        self._base_url = base_url

    @property
    def client(self) -> OpenAI:
        if self._client is None:
            self._client = OpenAI(api_key=self._api_key, base_url=self._base_url)
        return self._client

    @staticmethod
    def build_messages(content: str, duration: PodcastFormat) -> List[Dict[str, str]]:
        hint = LENGTH_HINTS[PodcastFormat(duration)]
        return [
            {
                "role": "system",
                "content": SYSTEM_PROMPT.format(
                    target_words=hint.target_words,
                    description=hint.description,
                    focus=hint.focus,
                ),
            },
            {
                "role": "user",
                "content": USER_PROMPT.format(
                    description=hint.description,
                    content=content,
                    target_words=hint.target_words,
                ),
            },
        ]

    def generate_script(self, content: str, duration: PodcastFormat) -> List[DialogueTurn]:
        """Write a host/guest dialogue for the given notes.

        Raises:
            ScriptGenerationError: On API errors or an unusable reply
        """
        log.info("Generating %s podcast script", PodcastFormat(duration).value)

        try:
            response = self.client.chat.completions.create(
                model=self.model,
                messages=self.build_messages(content, duration),
                temperature=self.temperature,
                response_format={"type": "json_object"},
                timeout=self.timeout,
            )
            reply = (response.choices[0].message.content or "").strip()
        except Exception as e:
            raise ScriptGenerationError(f"Failed to generate podcast script: {e}") from e

        turns = parse_dialogue(reply)
        log.info("Generated %d dialogue segments", len(turns))
        return turns
