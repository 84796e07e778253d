import logging
from fastapi import APIRouter, Depends, HTTPException

from adventure.api.deps import get_controller
from adventure.core.exceptions import InvalidTransition
from adventure.schemas.story import ChoiceIn, SessionSnapshot
from adventure.services.session_controller import SessionController

router = APIRouter()

@router.get("/session", response_model=SessionSnapshot)
async def get_session_state(controller: SessionController = Depends(get_controller)):
    """
    Returns the snapshot the page renders.
    """
    return controller.snapshot()

@router.post("/session/start", response_model=SessionSnapshot, status_code=202)
async def start_game(controller: SessionController = Depends(get_controller)):
    """
    Begins a new adventure. The story is generated in the background; watch /events for the result.
    """
    try:
        controller.start_game()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    logging.info("New adventure started.")
    return controller.snapshot()

@router.post("/session/choice", response_model=SessionSnapshot, status_code=202)
async def submit_choice(
    choice_in: ChoiceIn,
    controller: SessionController = Depends(get_controller),
):
    """
    Processes a player's choice and starts generating the next part of the story.
    """
    try:
        controller.submit_choice(choice_in.choice)
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return controller.snapshot()

@router.post("/session/reset", response_model=SessionSnapshot)
async def play_again(controller: SessionController = Depends(get_controller)):
    """
    Returns to the start screen after the story ended or failed.
    """
    try:
        controller.reset_to_start()
    except InvalidTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    return controller.snapshot()
