import os
import logging
from typing import Any, Dict, Optional

from google import genai
from google.genai import types
from pydantic import ValidationError

from .models import CardCategory, GenerateCardInput, GeneratedCard, HeroStep

logger = logging.getLogger(__name__)

GEMINI_MODEL = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")

_client: Optional[genai.Client] = None


def get_client() -> genai.Client:
    """Returns the shared Gemini client, creating it on first use."""
    global _client
    if _client is None:
        api_key = os.getenv("GEMINI_API_KEY")
        if not api_key:
            raise ValueError("GEMINI_API_KEY environment variable not set.")
        _client = genai.Client(api_key=api_key)
    return _client


HERO_STEP_DESCRIPTIONS = {
    HeroStep.CALL_TO_ADVENTURE: "An event or challenge that disrupts the ordinary world and invites the hero to embark on a journey.",
    HeroStep.CROSSING_THE_THRESHOLD: "The hero commits to the adventure and enters the special world, leaving the familiar behind.",
    HeroStep.MEETING_THE_MENTOR: "The hero encounters a wise figure who provides guidance, training, or magical gifts for the journey ahead.",
    HeroStep.TRIALS_AND_GROWTH: "The hero faces challenges, makes friends, identifies foes, and grows through experiences while learning the rules of the special world.",
    HeroStep.DEATH_AND_TRANSFORMATION: "The hero faces their greatest fear or most difficult challenge, often a life-or-death moment that leads to profound transformation or rebirth.",
    HeroStep.CHANGE_AND_RETURN: "The hero returns to the ordinary world transformed, bringing newfound wisdom, treasure, or the power to help others.",
}

CHARACTER_PERSPECTIVES = {
    "both": "all characters",
    "human": "human characters only",
    "non-human": "non-human characters only",
}

CARD_SYSTEM_PROMPT = """You are a specialized content creation assistant for a location-based storytelling game platform. Your role is to help game creators write compelling card titles and prompts that enhance the player experience.

Your expertise includes:
- Understanding the Hero's Journey narrative framework and its stages
- Creating prompts that align with specific journey steps or generalize across multiple steps when needed
- Crafting engaging, concise content that encourages player immersion and interaction with their physical surroundings
- Adapting tone and content based on character types (human, non-human, or both)
- Incorporating location-specific context or general keywords effectively

When multiple Hero's Journey steps are selected, you should create prompts that could fall into any of those stages naturally, finding common themes that make sense across the selected steps. Always prioritize clarity, engagement, and adherence to character limits while maintaining narrative coherence."""


def describe_hero_step(step: HeroStep) -> str:
    name = step.value.replace("_", " ").title()
    return f"{name}: {HERO_STEP_DESCRIPTIONS[step]}"


def build_card_prompt(request: GenerateCardInput, poi: Optional[Dict[str, Any]] = None) -> str:
    """Fills the card generation template for one request.

    ``poi`` is only used for POI-specific cards; general cards draw on the
    request keywords instead.
    """
    journey_step_details = "\n".join(describe_hero_step(step) for step in request.journey_steps)
    perspective = CHARACTER_PERSPECTIVES[request.character_type.value]

    context_info = ""
    if request.card_category == CardCategory.POI_SPECIFIC and poi:
        tags = ", ".join(poi.get("tags") or []) or "N/A"
        context_info = f"""
POI Context:
- Location Name: {poi.get('name')}
- Description: {poi.get('description') or 'N/A'}
- Contextual Data: {poi.get('contextual_data') or 'N/A'}
- POI Type: {poi.get('type')}
- Tags: {tags}

Please create a card prompt that is specifically tailored to this location and its unique characteristics."""
    elif request.card_category == CardCategory.GENERAL and request.keywords:
        context_info = f"""
Keywords: {request.keywords}
Please incorporate these keywords into the card prompt to guide the player's experience."""

    if request.card_category == CardCategory.POI_SPECIFIC:
        scope = "- Specifically tied to the location"
    else:
        scope = "- General enough for multiple locations"

    return f"""Generate a card prompt for a location-based storytelling game.
Card Type: {request.type.value}

Hero's Journey Steps with Descriptions:
{journey_step_details}

Character perspective: {perspective}
{context_info}

STRICT REQUIREMENTS:
1. Title: Maximum 25 characters (including spaces and punctuation)
2. Prompt: Maximum 150 characters (including spaces and punctuation)

The prompt should be aligned with the Hero's Journey step(s) and the card type. If more than one step is provided, ensure the prompt encompasses all relevant aspects.
Must be concise and engaging, encouraging players to immerse themselves in the narrative and interact with their surroundings.
{scope}
Return ONLY a JSON object with this exact format:
{{
  "title": "Your title (max 25 chars)",
  "prompt": "Your prompt (max 150 chars)"
}}
"""


async def generate_card_content(request: GenerateCardInput,
                                poi: Optional[Dict[str, Any]] = None) -> Optional[GeneratedCard]:
    """Asks Gemini for a card title and prompt; returns None if the call or its reply is unusable."""
    prompt = build_card_prompt(request, poi)
    try:
        response = await get_client().aio.models.generate_content(
            model=GEMINI_MODEL,
            contents=prompt,
            config=types.GenerateContentConfig(
                system_instruction=CARD_SYSTEM_PROMPT,
                response_mime_type="application/json",
                response_schema=GeneratedCard,
                thinking_config=types.ThinkingConfig(thinking_budget=0),
            )
        )
    except Exception as e:
        logger.error(
            f"Error calling Gemini API for card generation: "
            f"{type(e).__name__}: {e}"
        )
        return None

    if not response.text:
        logger.error("Empty response from Gemini for card generation.")
        return None

    try:
        return GeneratedCard.model_validate_json(response.text)
    except ValidationError as e:
        logger.error(f"Generated card failed Pydantic validation: {e}")
        return None
