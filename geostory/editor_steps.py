from typing import List

EDITOR_STEPS: List[str] = ["general", "characters", "pois", "cards", "ai"]
REVIEW_STEP = "review"


def next_step(step: str) -> str:
    """Returns the wizard step after ``step``; the last step and unknown steps lead to review."""
    if step in EDITOR_STEPS:
        index = EDITOR_STEPS.index(step)
        if index < len(EDITOR_STEPS) - 1:
            return EDITOR_STEPS[index + 1]
    return REVIEW_STEP
