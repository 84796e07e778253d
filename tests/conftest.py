import os

os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from adventure.scheduler import LoadingTicker
from adventure.schemas.story import StorySegment
from adventure.services.session_controller import SessionController

IMAGE = "data:image/jpeg;base64,QUJD"


class FakeGenerator:
    """Stands in for the generation backend and records every call."""

    def __init__(self, segments=(), image=IMAGE, narrative_error=None, image_error=None):
        self.segments = list(segments)
        self.image = image
        self.narrative_error = narrative_error
        self.image_error = image_error
        self.narrative_calls = []
        self.image_calls = []
        self.gate = None

    async def request_narrative(self, player_input, history_context):
        self.narrative_calls.append((player_input, history_context))
        if self.gate is not None:
            await self.gate.wait()
        if self.narrative_error is not None:
            raise self.narrative_error
        return self.segments.pop(0) if self.segments else None

    async def request_image(self, scene_description):
        self.image_calls.append(scene_description)
        if self.image_error is not None:
            raise self.image_error
        return self.image


def segment(scene="a clearing", situation="a fork in the path", choices=("go left", "go right")):
    return StorySegment(scene=scene, situation=situation, choices=list(choices))


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def ticker():
    # Never started: jobs stay pending, so tests drive ticks by hand.
    return LoadingTicker(AsyncIOScheduler(), interval_seconds=2.5)


@pytest.fixture
def snapshots():
    return []


@pytest.fixture
def make_controller(ticker, snapshots):
    def _make(generator):
        return SessionController(generator=generator, ticker=ticker, on_change=snapshots.append)
    return _make
