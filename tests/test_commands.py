import pytest

from standup_scribe.core.commands import CommandType, StandupAction, StandupCommand
from standup_scribe.core.exceptions import ValidationError
from standup_scribe.core.steps import (
    FIRST_STEP,
    QUESTION_STEPS,
    StandupAnswers,
    StandupStep,
    next_step,
    previous_step,
)


def test_action_encodes_and_decodes():
    action = StandupAction(verb=CommandType.CONTINUE, roster_member_id=12, run_id=34, step=StandupStep.APPETITE)

    assert action.encode() == "standup:continue:12:34:appetite"
    assert StandupAction.decode("standup:continue:12:34:appetite") == action
    assert StandupAction.decode("standup:start:1:2").step is None


@pytest.mark.parametrize(
    "action_id",
    ["", "standup", "standup:start:1", "other:start:1:2", "standup:dance:1:2", "standup:start:x:2", "standup:goto:1:2:bogus"],
)
def test_decode_rejects_malformed_ids(action_id):
    with pytest.raises(ValidationError):
        StandupAction.decode(action_id)


def test_command_from_action():
    action = StandupAction.decode("standup:start:7:9")
    command = StandupCommand.from_action("U1", action, value="hello")

    assert command.type == CommandType.START
    assert command.user_id == "U1"
    assert (command.roster_member_id, command.run_id) == (7, 9)
    assert command.value == "hello"


def test_step_movement_is_clamped():
    assert previous_step(FIRST_STEP) == FIRST_STEP
    assert next_step(QUESTION_STEPS[-1]) == StandupStep.CONFIRM
    assert next_step(StandupStep.CONFIRM) == StandupStep.CONFIRM
    assert len(QUESTION_STEPS) == 12


def test_answers_from_json_defaults_missing_and_malformed_fields():
    answers = StandupAnswers.from_json({
        "what_working_on": ["API"],
        "appetite": 5,
        "start_date": "yesterday",
        "confirm": "yes",
    })

    assert answers.what_working_on == ["API"]
    assert answers.appetite == ""
    assert answers.start_date.raw == "" and answers.start_date.iso is None
    assert answers.at_risk == []
    assert StandupAnswers.from_json(None) == StandupAnswers()
