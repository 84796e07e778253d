class GameError(Exception):
    """Base class for errors raised by the adventure game."""


class InvalidTransition(GameError):
    """Raised when a player event is not accepted in the current phase."""

    def __init__(self, event: str, phase: str):
        super().__init__(f"Cannot {event} while the game is in the '{phase}' phase.")
        self.event = event
        self.phase = phase


class GenerationError(GameError):
    """Raised when the generation backend fails to produce text or an image."""
