from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import List, Optional, Union

from adventure.schemas.story import SessionSnapshot, StorySegment


class Phase(str, enum.Enum):
    START = "start"
    LOADING = "loading"
    PLAYING = "playing"
    GAME_OVER = "game_over"
    ERROR = "error"


@dataclass(frozen=True)
class Start:
    phase = Phase.START


@dataclass(frozen=True)
class Loading:
    message: str
    phase = Phase.LOADING


@dataclass(frozen=True)
class Playing:
    segment: StorySegment
    image: Optional[str] = None
    phase = Phase.PLAYING


@dataclass(frozen=True)
class GameOver:
    segment: StorySegment
    phase = Phase.GAME_OVER


@dataclass(frozen=True)
class Error:
    message: str
    phase = Phase.ERROR


State = Union[Start, Loading, Playing, GameOver, Error]


@dataclass
class Session:
    """
    The one game session of this process.

    Segment, image and error only exist inside the phase that owns them, so a
    session can never hold e.g. an image while in the Error phase.
    """
    state: State = field(default_factory=Start)
    history: List[str] = field(default_factory=list)

    @property
    def phase(self) -> Phase:
        return self.state.phase

    @property
    def segment(self) -> Optional[StorySegment]:
        return getattr(self.state, "segment", None)

    @property
    def image(self) -> Optional[str]:
        return getattr(self.state, "image", None)

    @property
    def error(self) -> Optional[str]:
        if isinstance(self.state, Error):
            return self.state.message
        return None

    def to_snapshot(self, request_id: int = 0) -> SessionSnapshot:
        return SessionSnapshot(
            phase=self.phase.value,
            history=list(self.history),
            segment=self.segment,
            image=self.image,
            error=self.error,
            loading_message=self.state.message if isinstance(self.state, Loading) else None,
            request_id=request_id,
        )
