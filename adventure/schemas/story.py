from pydantic import BaseModel, ConfigDict, Field
from typing import List, Optional

ENDING_MARKER = "the end"

# --- Shared Models ---

class StorySegment(BaseModel):
    model_config = ConfigDict(frozen=True)

    scene: str
    situation: str
    choices: List[str] = Field(min_length=1)

    @property
    def is_ending(self) -> bool:
        return any(is_ending_choice(choice) for choice in self.choices)


def is_ending_choice(choice: str) -> bool:
    """
    The backend signals a conclusion by offering a "The End." choice.
    """
    return ENDING_MARKER in choice.lower()

# --- Request Models ---

class ChoiceIn(BaseModel):
    choice: str

# --- Response Models ---

class SessionSnapshot(BaseModel):
    phase: str
    history: List[str]
    segment: Optional[StorySegment] = None
    image: Optional[str] = None
    error: Optional[str] = None
    loading_message: Optional[str] = None
    request_id: int = 0
