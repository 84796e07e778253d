import openai
import json
import logging
from typing import Optional

from pydantic import ValidationError

from adventure.core.config import settings
from adventure.core.exceptions import GenerationError
from adventure.schemas.story import StorySegment

NARRATIVE_FAILURE_MESSAGE = "The storyteller seems to have lost their train of thought. Please try again."
IMAGE_FAILURE_MESSAGE = "The world's vision blurs... failed to generate an image."
IMAGE_MIME_TYPES = {
    "jpeg": "image/jpeg",
    "png": "image/png",
    "webp": "image/webp",
}
# Base64 prefixes of each format's magic bytes
IMAGE_SIGNATURES = {
    "/9j/": "jpeg",
    "iVBORw0KGgo": "png",
    "UklGR": "webp",
}

STORY_SCHEMA = {
    "type": "object",
    "properties": {
        "scene": {
            "type": "string",
            "description": "A vivid, one-paragraph description of the current environment and atmosphere. "
                           "This will be used to generate an image. Focus on visual details.",
        },
        "situation": {
            "type": "string",
            "description": "A one-paragraph description of the immediate situation or challenge the player faces. "
                           "Build tension or mystery.",
        },
        "choices": {
            "type": "array",
            "description": "An array of 3 or 4 short, actionable choices for the player "
                           "(e.g., 'Inspect the glowing runes', 'Follow the faint whisper'). "
                           "If the story has reached a conclusive end (good or bad), one of the choices must be 'The End.'",
            "items": {"type": "string"},
        },
    },
    "required": ["scene", "situation", "choices"],
}


def _extract_json_from_string(text: Optional[str]) -> Optional[str]:
    """
    Extracts a JSON object string from a larger string, cleaning up markdown.
    """
    if not text:
        return None

    text = text.strip()
    if text.startswith("```json"):
        text = text[7:]
        if text.endswith("```"):
            text = text[:-3]

    text = text.strip()
    first_bracket_pos = text.find('{')
    if first_bracket_pos == -1:
        return None
    last_bracket_pos = text.rfind('}')
    if last_bracket_pos == -1 or last_bracket_pos < first_bracket_pos:
        return None

    return text[first_bracket_pos:last_bracket_pos+1]


def parse_story_segment(text: Optional[str]) -> Optional[StorySegment]:
    """
    Best-effort parse of a narrative payload. Returns None for anything empty or malformed.
    """
    json_str = _extract_json_from_string(text)
    if not json_str:
        return None
    try:
        return StorySegment.model_validate(json.loads(json_str))
    except (ValueError, ValidationError) as e:
        logging.warning(f"Discarding unparsable story segment: {e}")
        return None


def image_format(encoded: str) -> str:
    """
    Names the format of a base64 image payload from its magic bytes.
    Unrecognized payloads are assumed to be in the requested format.
    """
    for prefix, name in IMAGE_SIGNATURES.items():
        if encoded.startswith(prefix):
            return name
    return settings.IMAGE_OUTPUT_FORMAT


def image_mime_type(encoded: str) -> str:
    name = image_format(encoded)
    return IMAGE_MIME_TYPES.get(name, f"image/{name}")


class StoryGenerator:
    """
    Stateless wrapper around the two generation calls the game needs.
    Every call is independent: nothing is cached, retried or deduplicated.
    """

    def __init__(self, client: Optional[openai.AsyncOpenAI] = None):
        self.client = client or openai.AsyncOpenAI(
            api_key=settings.OPENAI_API_KEY, base_url=settings.OPENAI_BASE_URL
        )

    async def request_narrative(self, player_input: str, history_context: str) -> Optional[StorySegment]:
        """
        Generates the next scene, situation and choices for the player's last action.
        Returns None when the backend answers with an empty or unparsable payload.
        """
        prompt = f"""You are a master storyteller for a text-based adventure game.
    The player's last action was: "{player_input}".
    The story so far has been: "{history_context}".
    Continue the story with a new, creative development. The tone is epic fantasy with a hint of mystery.
    Generate the next scene, situation, and choices. Avoid cliches. Be descriptive and engaging.
    If the story has reached a natural and conclusive end, make one of the choices "The End."
    """
        logging.info(f"Requesting story segment for action: {player_input}")
        try:
            response = await self.client.chat.completions.create(
                model=settings.OPENAI_MODEL,
                messages=[{"role": "user", "content": prompt}],
                response_format={
                    "type": "json_schema",
                    "json_schema": {"name": "story_segment", "schema": STORY_SCHEMA},
                },
                temperature=settings.STORY_TEMPERATURE,
            )
            content = response.choices[0].message.content
        except Exception as e:
            logging.error(f"Error generating story segment: {e}")
            raise GenerationError(NARRATIVE_FAILURE_MESSAGE) from e

        return parse_story_segment(content)

    async def request_image(self, scene_description: str) -> str:
        """
        Paints the scene and returns it as a displayable data URI.
        """
        image_prompt = (
            f"Epic fantasy digital painting of the following scene: {scene_description}. "
            "Cinematic lighting, high detail, immersive atmosphere, style of an epic RPG splash screen."
        )
        try:
            response = await self.client.images.generate(
                model=settings.OPENAI_IMAGE_MODEL,
                prompt=image_prompt,
                n=1,
                size=settings.IMAGE_SIZE,
                output_format=settings.IMAGE_OUTPUT_FORMAT,
                response_format="b64_json",
            )
        except Exception as e:
            logging.error(f"Error generating scene image: {e}")
            raise GenerationError(IMAGE_FAILURE_MESSAGE) from e

        if not response.data or not response.data[0].b64_json:
            logging.error("Error generating scene image: no image was generated.")
            raise GenerationError(IMAGE_FAILURE_MESSAGE)

        encoded = response.data[0].b64_json
        return f"data:{image_mime_type(encoded)};base64,{encoded}"
