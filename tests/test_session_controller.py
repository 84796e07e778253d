import asyncio

import pytest

from adventure.core.exceptions import GenerationError, InvalidTransition
from adventure.models.session import Phase, Session
from adventure.scheduler import IMAGE_LOADING_MESSAGE, LOADING_MESSAGES
from adventure.services.session_controller import NULL_SEGMENT_MESSAGE, OPENING_PROMPT, UNKNOWN_ERROR_MESSAGE

from conftest import IMAGE, FakeGenerator, segment

pytestmark = pytest.mark.anyio


async def test_new_controller_starts_empty(make_controller):
    controller = make_controller(FakeGenerator())

    assert controller.phase is Phase.START
    assert controller.session == Session()
    assert controller.snapshot().history == []


async def test_start_game_loads_then_plays(make_controller, snapshots):
    generator = FakeGenerator(segments=[segment()])
    controller = make_controller(generator)

    turn = controller.start_game()

    assert controller.phase is Phase.LOADING
    assert controller.session.history == [OPENING_PROMPT]
    assert controller.session.image is None
    assert snapshots[-1].loading_message == LOADING_MESSAGES[0]

    await turn

    assert controller.phase is Phase.PLAYING
    assert controller.session.segment == segment()
    assert controller.session.image == IMAGE
    assert generator.narrative_calls == [(OPENING_PROMPT, "")]
    assert generator.image_calls == ["a clearing"]
    assert [s.phase for s in snapshots] == ["loading", "loading", "playing"]
    assert snapshots[1].loading_message == IMAGE_LOADING_MESSAGE


async def test_choosing_the_end_finishes_without_request(make_controller):
    generator = FakeGenerator(segments=[segment()])
    controller = make_controller(generator)
    await controller.start_game()

    assert controller.phase is Phase.PLAYING
    assert generator.image_calls == ["a clearing"]

    assert controller.submit_choice("The End.") is None

    assert controller.phase is Phase.GAME_OVER
    assert controller.session.image is None
    assert controller.session.segment == segment()
    assert len(generator.narrative_calls) == 1
    assert len(generator.image_calls) == 1
    assert controller.session.history == [OPENING_PROMPT]


async def test_ending_segment_skips_image(make_controller):
    ending = segment(choices=["go left", "go right", "The End."])
    generator = FakeGenerator(segments=[segment(), ending])
    controller = make_controller(generator)
    await controller.start_game()
    assert controller.session.image == IMAGE

    await controller.submit_choice("go left")

    assert controller.phase is Phase.GAME_OVER
    assert controller.session.segment == ending
    assert controller.session.image is None
    assert generator.image_calls == ["a clearing"]


async def test_ending_marker_is_case_insensitive_substring(make_controller):
    generator = FakeGenerator(segments=[segment(choices=["Walk away", "and so it was THE END of it"])])
    controller = make_controller(generator)

    await controller.start_game()

    assert controller.phase is Phase.GAME_OVER
    assert generator.image_calls == []


async def test_narrative_failure_lands_in_error(make_controller):
    generator = FakeGenerator(narrative_error=GenerationError("The storyteller is asleep."))
    controller = make_controller(generator)

    await controller.start_game()

    assert controller.phase is Phase.ERROR
    assert controller.session.error == "The storyteller is asleep."
    assert controller.session.image is None
    assert generator.image_calls == []


async def test_unexpected_failure_without_message(make_controller):
    controller = make_controller(FakeGenerator(narrative_error=RuntimeError()))

    await controller.start_game()

    assert controller.phase is Phase.ERROR
    assert controller.session.error == UNKNOWN_ERROR_MESSAGE


async def test_unusable_segment_lands_in_error(make_controller):
    generator = FakeGenerator(segments=[])
    controller = make_controller(generator)

    await controller.start_game()

    assert controller.phase is Phase.ERROR
    assert controller.session.error == NULL_SEGMENT_MESSAGE
    assert generator.image_calls == []


async def test_image_failure_still_plays(make_controller):
    generator = FakeGenerator(segments=[segment()], image_error=GenerationError("blurry"))
    controller = make_controller(generator)

    await controller.start_game()

    assert controller.phase is Phase.PLAYING
    assert controller.session.segment == segment()
    assert controller.session.image is None
    assert controller.session.error is None


async def test_history_grows_one_entry_per_action(make_controller):
    generator = FakeGenerator(segments=[segment(), segment(scene="a cave"), segment(scene="a river")])
    controller = make_controller(generator)

    await controller.start_game()
    await controller.submit_choice("go left")
    await controller.submit_choice("swim")

    assert controller.session.history == [OPENING_PROMPT, "go left", "swim"]
    assert generator.narrative_calls[2] == ("swim", f"{OPENING_PROMPT} -> go left")
    assert generator.image_calls == ["a clearing", "a cave", "a river"]


@pytest.mark.parametrize("error", [None, GenerationError("boom")])
async def test_play_again_restores_initial_session(make_controller, error):
    segments = [segment(choices=["The End."])] if error is None else []
    controller = make_controller(FakeGenerator(segments=segments, narrative_error=error))
    await controller.start_game()
    assert controller.phase in (Phase.GAME_OVER, Phase.ERROR)

    controller.reset_to_start()

    assert controller.phase is Phase.START
    assert controller.session == Session()


async def test_events_outside_their_phase_are_rejected(make_controller):
    generator = FakeGenerator(segments=[segment()])
    controller = make_controller(generator)

    with pytest.raises(InvalidTransition):
        controller.submit_choice("go left")
    with pytest.raises(InvalidTransition):
        controller.reset_to_start()
    assert controller.session == Session()

    turn = controller.start_game()
    with pytest.raises(InvalidTransition):
        controller.start_game()
    with pytest.raises(InvalidTransition):
        controller.submit_choice("go left")
    await turn

    with pytest.raises(InvalidTransition):
        controller.start_game()
    with pytest.raises(InvalidTransition):
        controller.reset_to_start()
    assert controller.session.history == [OPENING_PROMPT]
    assert len(generator.narrative_calls) == 1


async def test_superseded_result_is_dropped(make_controller):
    generator = FakeGenerator(segments=[segment()])
    generator.gate = asyncio.Event()
    controller = make_controller(generator)

    turn = controller.start_game()
    await asyncio.sleep(0)
    controller.request_id += 1
    generator.gate.set()
    await turn

    assert controller.phase is Phase.LOADING
    assert controller.session.segment is None
    assert generator.image_calls == []


async def test_ticker_rotates_message_while_loading(make_controller, ticker):
    generator = FakeGenerator(segments=[segment()])
    generator.gate = asyncio.Event()
    controller = make_controller(generator)

    turn = controller.start_game()
    job = ticker.scheduler.get_job("loading-flavor-1")
    assert job is not None

    await job.func()
    assert controller.snapshot().loading_message in LOADING_MESSAGES

    generator.gate.set()
    await turn

    assert not ticker.is_running("loading-flavor-1")
    await job.func()
    assert controller.phase is Phase.PLAYING


@pytest.mark.parametrize(
    "generator",
    [
        FakeGenerator(segments=[segment()]),
        FakeGenerator(segments=[segment(choices=["The End."])]),
        FakeGenerator(narrative_error=GenerationError("boom")),
        FakeGenerator(segments=[]),
        FakeGenerator(segments=[segment()], image_error=GenerationError("blurry")),
    ],
    ids=["playing", "game-over", "error", "unparsable", "no-image"],
)
async def test_ticker_stops_on_every_exit(make_controller, ticker, generator):
    controller = make_controller(generator)

    turn = controller.start_game()
    assert ticker.is_running("loading-flavor-1")
    await turn

    assert controller.phase is not Phase.LOADING
    assert not ticker.is_running("loading-flavor-1")


async def test_start_game_needs_running_loop(make_controller):
    controller = make_controller(FakeGenerator())

    def start_outside_loop():
        controller.start_game()

    with pytest.raises(RuntimeError):
        await asyncio.get_running_loop().run_in_executor(None, start_outside_loop)
    assert controller.session == Session()


async def test_published_snapshots_never_go_backwards(make_controller, snapshots):
    generator = FakeGenerator(segments=[segment(), segment(scene="a cave")])
    controller = make_controller(generator)

    await controller.start_game()
    await controller.submit_choice("go left")
    controller.submit_choice("The End.")
    controller.reset_to_start()

    settled = {"loading": 0, "start": 1, "playing": 1, "game_over": 1, "error": 1}
    order = [(s.request_id, settled[s.phase]) for s in snapshots]
    assert order == sorted(order)
    assert snapshots[-1].phase == "start"
    assert snapshots[-1].request_id > snapshots[-2].request_id
