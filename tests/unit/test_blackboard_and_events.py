import pytest

from blueprint_orchestrator.intelligence.blackboard import Blackboard
from blueprint_orchestrator.intelligence.event_bus import EventBus
from blueprint_orchestrator.intelligence.models import Section
from blueprint_orchestrator.intelligence.planner import create_run_plan


def test_blackboard_rejects_unknown_sections_and_non_text() -> None:
    board = Blackboard()

    with pytest.raises(ValueError, match="Unknown section"):
        board.put("Marketing Plan", "text")
    with pytest.raises(TypeError):
        board.put(Section.REQUIREMENTS, {"not": "text"})


def test_blackboard_write_once_unless_overwrite() -> None:
    board = Blackboard()
    board.put(Section.REQUIREMENTS, "v1")

    with pytest.raises(ValueError, match="already committed"):
        board.put("Requirements", "v2")
    board.put(Section.REQUIREMENTS, "v2", overwrite=True)

    assert board[Section.REQUIREMENTS] == "v2"
    assert "Requirements" in board
    assert "Nonsense" not in board


def test_blackboard_copy_is_independent() -> None:
    board = Blackboard({Section.REQUIREMENTS: "v1"})
    clone = board.copy()
    clone.put(Section.REQUIREMENTS, "v2", overwrite=True)

    assert board.get(Section.REQUIREMENTS) == "v1"
    assert clone.as_text_map() == {"Requirements": "v2"}


def test_blackboard_assembles_in_plan_order() -> None:
    plan = create_run_plan("proj", "seed")
    board = Blackboard()
    board.put(Section.TESTING, "tests")
    board.put(Section.REQUIREMENTS, "reqs")

    assert board.assemble(plan) == "# Requirements\n\nreqs\n\n# Testing Strategy\n\ntests\n\n"


def test_event_bus_fans_out_and_unsubscribes() -> None:
    bus = EventBus()
    received = []
    unsubscribe = bus.subscribe(received.append)

    bus.publish("job-1", "PLAN", "PLAN_CREATED", {"tasks": 8})
    unsubscribe()
    bus.publish("job-1", "PLAN", "IGNORED")

    assert [event.event_type for event in received] == ["PLAN_CREATED"]
    assert received[0].payload == {"tasks": 8}
    assert received[0].trace_id


def test_event_bus_skips_failing_listener() -> None:
    bus = EventBus()
    received = []

    def broken(_event) -> None:
        raise RuntimeError("listener bug")

    bus.subscribe(broken)
    bus.subscribe(received.append)
    bus.publish("job-1", "DISPATCH", "TASK_STARTED")

    assert len(received) == 1


def test_event_bus_history_is_bounded_and_per_job() -> None:
    bus = EventBus(history_limit=3)
    for idx in range(5):
        bus.publish("job-1" if idx % 2 == 0 else "job-2", "DISPATCH", f"E{idx}")

    assert [event.event_type for event in bus.history("job-1")] == ["E2", "E4"]
    assert [event.event_type for event in bus.history("job-2")] == ["E3"]
