from typing import Any, Dict

TONE_DESCRIPTIONS = {
    "enthusiastic": "enthusiastic and energetic",
    "calm": "calm and measured",
    "mysterious": "mysterious and enigmatic",
    "professional": "professional and formal",
    "playful": "playful and lighthearted",
    "serious": "serious and thoughtful",
}

PERSONALITY_DESCRIPTIONS = {
    "mentor": "a wise mentor who provides guidance and knowledge",
    "friend": "a supportive friend who accompanies the player",
    "sage": "an ancient sage with deep wisdom",
    "explorer": "an adventurous explorer eager to discover",
    "historian": "a knowledgeable historian sharing stories",
    "storyteller": "a captivating storyteller weaving narratives",
}

RELATIONSHIP_DESCRIPTIONS = {
    "guide": "You are their guide through this journey",
    "companion": "You are their trusted companion",
    "rival": "You are their friendly rival, challenging them",
    "mysterious-ally": "You are a mysterious ally with hidden knowledge",
}

HUMOR_LEVELS = ["serious with no humor", "occasional subtle humor", "frequent playful humor"]
FORMALITY_LEVELS = ["casual and informal", "balanced tone", "formal and respectful"]


def _level(levels, index, default: str) -> str:
    if isinstance(index, int) and 0 <= index < len(levels):
        return levels[index]
    return default


def _value(field: Any) -> Any:
    # Accept enum members as well as raw strings
    return getattr(field, "value", field)


def generate_system_prompt(config: Dict[str, Any]) -> str:
    """Builds the in-game companion's system prompt from its persona settings."""
    personality = PERSONALITY_DESCRIPTIONS.get(_value(config.get("personality")), "a helpful companion")
    tone = TONE_DESCRIPTIONS.get(_value(config.get("tone")), "balanced")
    formality = _level(FORMALITY_LEVELS, config.get("formality"), "a balanced tone")
    relationship = RELATIONSHIP_DESCRIPTIONS.get(_value(config.get("relationship")), "You assist the player")
    humor = _level(HUMOR_LEVELS, config.get("humor_level"), "balanced")

    additional = ""
    if config.get("additional_context"):
        additional = f"\nAdditional Context:\n{config['additional_context']}\n"

    return (
        f"You are {config.get('name')}, {personality}.\n\n"
        f"Your communication style is {tone}, with {formality}. {relationship}.\n\n"
        f"Communication Guidelines:\n"
        f"- Humor level: {humor}\n"
        f"- Keep responses concise and engaging\n"
        f"- Adapt to the player's emotional state\n"
        f"- Reference the game's location, characters, and story when relevant\n"
        f"- Guide players through their hero's journey with wisdom and encouragement\n"
        f"{additional}\n"
        f"Remember: You're part of an immersive location-based storytelling experience. "
        f"Help players connect with their surroundings and their inner journey."
    )
