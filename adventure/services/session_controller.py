import asyncio
import logging
from typing import Callable, Optional

from adventure.core.exceptions import InvalidTransition
from adventure.models.session import Error, GameOver, Loading, Phase, Playing, Session, State
from adventure.scheduler import IMAGE_LOADING_MESSAGE, LOADING_MESSAGES, LoadingTicker
from adventure.schemas.story import SessionSnapshot, is_ending_choice
from adventure.services.story_generator import StoryGenerator

logger = logging.getLogger(__name__)

OPENING_PROMPT = "Begin a new fantasy adventure in a mysterious, ancient forest."
HISTORY_SEPARATOR = " -> "
NULL_SEGMENT_MESSAGE = "Failed to generate story segment."
UNKNOWN_ERROR_MESSAGE = "An unknown error occurred."


class SessionController:
    """
    Sole owner of the game session.

    Player events (`start_game`, `submit_choice`, `reset_to_start`) are applied
    synchronously; a turn that needs the generation backend is run as a single
    background task. Every turn gets a new request id, and a result is only
    applied while its request id is still the active one, so a late answer can
    never overwrite a newer state.
    """

    def __init__(
        self,
        generator: StoryGenerator,
        ticker: Optional[LoadingTicker] = None,
        on_change: Optional[Callable[[SessionSnapshot], None]] = None,
    ):
        self.generator = generator
        self.ticker = ticker
        self.on_change = on_change
        self.session = Session()
        self.request_id = 0
        self.turn: Optional[asyncio.Task] = None
        self._ticker_job: Optional[str] = None

    @property
    def phase(self) -> Phase:
        return self.session.phase

    def snapshot(self) -> SessionSnapshot:
        return self.session.to_snapshot(self.request_id)

    # --- Player events ---

    def start_game(self) -> asyncio.Task:
        self._require(Phase.START, "start the game")
        return self._advance(OPENING_PROMPT)

    def submit_choice(self, choice: str) -> Optional[asyncio.Task]:
        """
        Applies the player's choice. Returns the turn task, or None when the
        choice ends the story and no request is needed.
        """
        self._require(Phase.PLAYING, "choose an action")
        if is_ending_choice(choice):
            logger.info("Player ended the story with '%s'.", choice)
            self._set_state(GameOver(segment=self.session.segment))
            return None
        return self._advance(choice)

    def reset_to_start(self):
        if self.phase not in (Phase.GAME_OVER, Phase.ERROR):
            raise InvalidTransition("play again", self.phase.value)
        self.request_id += 1
        self._stop_ticker()
        self.session = Session()
        logger.info("Session reset.")
        self._publish()

    # --- Turn handling ---

    def _advance(self, player_input: str) -> asyncio.Task:
        loop = asyncio.get_running_loop()
        history_context = HISTORY_SEPARATOR.join(self.session.history)
        self.session.history.append(player_input)
        self.request_id += 1
        request_id = self.request_id
        self.session.state = Loading(message=LOADING_MESSAGES[0])
        self._start_ticker(request_id)
        self._publish()
        self.turn = loop.create_task(self._run_turn(request_id, player_input, history_context))
        return self.turn

    async def _run_turn(self, request_id: int, player_input: str, history_context: str):
        try:
            try:
                segment = await self.generator.request_narrative(player_input, history_context)
            except Exception as e:
                logger.error(f"Narrative request {request_id} failed: {e}")
                self._settle(request_id, Error(message=str(e) or UNKNOWN_ERROR_MESSAGE))
                return

            if segment is None:
                logger.error(f"Narrative request {request_id} returned no usable segment.")
                self._settle(request_id, Error(message=NULL_SEGMENT_MESSAGE))
                return

            if segment.is_ending:
                self._settle(request_id, GameOver(segment=segment))
                return

            if not self._is_active(request_id):
                logger.info("Dropping segment of superseded request %d.", request_id)
                return
            self._stop_ticker(request_id)
            self._set_state(Loading(message=IMAGE_LOADING_MESSAGE))

            try:
                image = await self.generator.request_image(segment.scene)
            except Exception as e:
                logger.warning(f"Continuing without an illustration: {e}")
                image = None
            self._settle(request_id, Playing(segment=segment, image=image))
        finally:
            self._stop_ticker(request_id)

    def _settle(self, request_id: int, state: State) -> bool:
        if not self._is_active(request_id):
            logger.info("Dropping result of superseded request %d.", request_id)
            return False
        self._stop_ticker(request_id)
        self._set_state(state)
        return True

    def _is_active(self, request_id: int) -> bool:
        return request_id == self.request_id and self.phase is Phase.LOADING

    # --- Loading flavor text ---

    def _start_ticker(self, request_id: int):
        if self.ticker is None:
            return
        self._ticker_job = f"loading-flavor-{request_id}"
        self.ticker.start(self._ticker_job, lambda message: self._rotate_message(request_id, message))

    def _stop_ticker(self, request_id: Optional[int] = None):
        if self.ticker is None or self._ticker_job is None:
            return
        if request_id is not None and self._ticker_job != f"loading-flavor-{request_id}":
            return
        self.ticker.stop(self._ticker_job)
        self._ticker_job = None

    def _rotate_message(self, request_id: int, message: str):
        if self._is_active(request_id):
            self.session.state = Loading(message=message)
            self._publish()

    # --- Helpers ---

    def _require(self, phase: Phase, event: str):
        if self.phase is not phase:
            raise InvalidTransition(event, self.phase.value)

    def _set_state(self, state: State):
        self.session.state = state
        logger.info("Session phase is now '%s'.", state.phase.value)
        self._publish()

    def _publish(self):
        if self.on_change is not None:
            self.on_change(self.snapshot())
