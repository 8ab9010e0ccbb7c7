from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class HeroStep(str, Enum):
    CALL_TO_ADVENTURE = "call_to_adventure"
    CROSSING_THE_THRESHOLD = "crossing_the_threshold"
    MEETING_THE_MENTOR = "meeting_the_mentor"
    TRIALS_AND_GROWTH = "trials_and_growth"
    DEATH_AND_TRANSFORMATION = "death_and_transformation"
    CHANGE_AND_RETURN = "change_and_return"


class ContentType(str, Enum):
    """Shared by POIs and cards."""
    NATURE = "nature"
    HISTORY = "history"
    SENSE = "sense"
    ACTION = "action"
    LANDMARK = "landmark"


class CharacterCategory(str, Enum):
    HUMAN = "human"
    NON_HUMAN = "non-human"


class CardCharacterCategory(str, Enum):
    HUMAN = "human"
    NON_HUMAN = "non-human"
    BOTH = "both"


class CardCategory(str, Enum):
    GENERAL = "general"
    POI_SPECIFIC = "poi_specific"


class CompanionTone(str, Enum):
    ENTHUSIASTIC = "enthusiastic"
    CALM = "calm"
    MYSTERIOUS = "mysterious"
    PROFESSIONAL = "professional"
    PLAYFUL = "playful"
    SERIOUS = "serious"


class CompanionPersonality(str, Enum):
    MENTOR = "mentor"
    FRIEND = "friend"
    SAGE = "sage"
    EXPLORER = "explorer"
    HISTORIAN = "historian"
    STORYTELLER = "storyteller"


class CompanionRelationship(str, Enum):
    GUIDE = "guide"
    COMPANION = "companion"
    RIVAL = "rival"
    MYSTERIOUS_ALLY = "mysterious-ally"


class GameStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


class GameVisibility(str, Enum):
    PRIVATE = "private"
    PUBLIC = "public"


class Location(BaseModel):
    lat: float
    lng: float


# --- Form inputs ---

class GeneralInfoInput(BaseModel):
    title: str = Field(..., min_length=3, max_length=100)
    description: str = Field(..., min_length=3, max_length=1000)
    location: Optional[Location] = None
    cover_image_url: Optional[str] = None
    categories: List[str] = []


class CharacterInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    summary: str = Field(..., min_length=1, max_length=1000)
    image_url: Optional[str] = None
    category: CharacterCategory


class POIInput(BaseModel):
    name: str = Field(..., min_length=3, max_length=200)
    description: str = Field(..., min_length=3, max_length=1000)
    contextual_data: str = Field(..., min_length=3, max_length=2000)
    image_url: Optional[str] = None
    type: ContentType
    tags: List[str] = []
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)


class CardInput(BaseModel):
    title: str = Field(..., min_length=3, max_length=200)
    prompt: str = Field(..., min_length=10, max_length=2000)
    type: ContentType
    hero_steps: List[HeroStep] = Field(..., min_length=1)
    character_category: CardCharacterCategory
    card_category: CardCategory = CardCategory.GENERAL
    keywords: Optional[str] = None
    poi_id: Optional[int] = None


class AICompanionInput(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    avatar_url: Optional[str] = None
    tone: CompanionTone
    personality: CompanionPersonality
    relationship: CompanionRelationship
    humor_level: int = Field(0, ge=0, le=2)
    formality: int = Field(1, ge=0, le=2)
    additional_context: Optional[str] = Field(None, max_length=2000)


class LoginInput(BaseModel):
    email: str = Field(..., min_length=3, max_length=320)


class GenerateCardInput(BaseModel):
    type: ContentType
    journey_steps: List[HeroStep] = Field(..., min_length=1)
    character_type: CardCharacterCategory
    card_category: CardCategory = CardCategory.GENERAL
    keywords: Optional[str] = None
    poi_id: Optional[int] = None


class GeneratedCard(BaseModel):
    title: str = Field(..., max_length=50)
    prompt: str = Field(..., max_length=300)
