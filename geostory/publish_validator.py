"""Publish-readiness rules shared by every publish entry point.

``evaluate`` inspects a snapshot of a game and its related collections and
returns the ordered list of reasons the game cannot be published yet. Rows
may be pydantic models or plain dicts straight from the store; a missing
field is treated as absent, and a collection that is not a list, tuple or set
(``None`` included) counts as empty.
"""
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Optional, Set

from .models import HeroStep

MIN_CHARACTERS = 2
MIN_POIS = 6
MIN_CARDS = 10
ALL_HERO_STEPS = frozenset(step.value for step in HeroStep)


@dataclass(frozen=True)
class ValidationResult:
    violations: List[str] = field(default_factory=list)

    @property
    def ready(self) -> bool:
        return not self.violations


def _get(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return value.strip() == ""
    return False


SEQUENCE_TYPES = (list, tuple, set, frozenset)


def _rows(collection: Any) -> List[Any]:
    # Anything other than a plain sequence counts as no rows
    if isinstance(collection, SEQUENCE_TYPES):
        return list(collection)
    return []


def covered_hero_steps(cards: Optional[Iterable[Any]]) -> Set[str]:
    """Union of the known hero steps tagged across ``cards``."""
    covered = set()
    for card in _rows(cards):
        steps = _get(card, "hero_steps")
        if not isinstance(steps, SEQUENCE_TYPES):
            continue
        for step in steps:
            value = step.value if isinstance(step, HeroStep) else step
            if isinstance(value, str) and value in ALL_HERO_STEPS:
                covered.add(value)
    return covered


def evaluate(game: Any,
             characters: Optional[Iterable[Any]],
             pois: Optional[Iterable[Any]],
             cards: Optional[Iterable[Any]],
             ai_config: Any) -> ValidationResult:
    violations = []

    if _is_blank(_get(game, "title")):
        violations.append("Game title is required")
    if _is_blank(_get(game, "description")):
        violations.append("Game description is required")
    if _get(game, "location") is None:
        violations.append("Game location is required")

    if len(_rows(characters)) < MIN_CHARACTERS:
        violations.append(f"At least {MIN_CHARACTERS} characters are required")
    if len(_rows(pois)) < MIN_POIS:
        violations.append(f"At least {MIN_POIS} POIs are required")

    cards = _rows(cards)
    if len(cards) < MIN_CARDS:
        violations.append(f"At least {MIN_CARDS} cards are required")
    elif len(covered_hero_steps(cards)) < len(ALL_HERO_STEPS):
        violations.append(f"All {len(ALL_HERO_STEPS)} hero's journey steps must be covered")

    if not ai_config:
        violations.append("AI companion configuration is required")
    else:
        if _is_blank(_get(ai_config, "name")):
            violations.append("AI companion name is required")
        if _is_blank(_get(ai_config, "tone")):
            violations.append("AI companion tone is required")
        if _is_blank(_get(ai_config, "personality")):
            violations.append("AI companion personality is required")
        if _is_blank(_get(ai_config, "relationship")):
            violations.append("AI companion relationship is required")
        # 0 is a valid level
        if _get(ai_config, "humor_level") is None:
            violations.append("AI companion humor level is required")
        if _get(ai_config, "formality") is None:
            violations.append("AI companion formality is required")

    return ValidationResult(violations=violations)
