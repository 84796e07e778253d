import asyncio
import base64
import logging
from pathlib import Path
from typing import Optional

import typer
import uvicorn

from adventure.core.config import settings
from adventure.models.session import Phase
from adventure.scheduler import LOADING_MESSAGES
from adventure.services.session_controller import SessionController
from adventure.services.story_generator import StoryGenerator

cli_app = typer.Typer()

@cli_app.command()
def serve(host: str = "127.0.0.1", port: int = 8000):
    """
    Runs the web version of the game.
    """
    uvicorn.run("adventure.main:app", host=host, port=port)

@cli_app.command()
def play(save_images: Optional[Path] = typer.Option(None, help="Directory to store scene illustrations in.")):
    """
    Plays the adventure in the terminal.
    """
    logging.basicConfig(level=settings.LOG_LEVEL, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    if save_images:
        save_images.mkdir(parents=True, exist_ok=True)
    asyncio.run(_play(SessionController(generator=StoryGenerator()), save_images))


def _save_image(data_uri: str, directory: Path, turn: int) -> Path:
    header, encoded = data_uri.split(",", 1)
    subtype = header.split("/", 1)[1].split(";", 1)[0]
    extension = "jpg" if subtype == "jpeg" else subtype
    path = directory / f"scene_{turn:03d}.{extension}"
    path.write_bytes(base64.b64decode(encoded))
    return path


async def _play(controller: SessionController, save_images: Optional[Path] = None):
    typer.echo("Gemini Adventure")
    typer.echo("An epic journey crafted by AI. Your choices shape the story and the world around you.\n")
    typer.prompt("Press Enter to begin your quest", default="", show_default=False)
    turn = controller.start_game()

    while True:
        if turn is not None:
            typer.echo(f"\n{LOADING_MESSAGES[0]}")
            await turn
            turn = None

        session = controller.session
        if session.phase is Phase.PLAYING:
            if session.image and save_images:
                path = _save_image(session.image, save_images, len(session.history))
                typer.echo(f"[illustration saved to {path}]")
            typer.echo(f"\n{session.segment.scene}\n\n{session.segment.situation}\n")
            for index, choice in enumerate(session.segment.choices, start=1):
                typer.echo(f"  {index}. {choice}")
            picked = typer.prompt("Your choice", type=int)
            while not 1 <= picked <= len(session.segment.choices):
                picked = typer.prompt(f"Pick a number between 1 and {len(session.segment.choices)}", type=int)
            turn = controller.submit_choice(session.segment.choices[picked - 1])
            continue

        if session.phase is Phase.GAME_OVER:
            typer.echo("\nThe End")
            typer.echo(session.segment.situation if session.segment else "Your adventure has concluded.")
            prompt = "Play again?"
        else:
            typer.echo("\nAn Unexpected Obstacle")
            typer.echo(session.error)
            prompt = "Start anew?"

        if not typer.confirm(prompt, default=True):
            break
        controller.reset_to_start()
        turn = controller.start_game()

if __name__ == "__main__":
    cli_app()
