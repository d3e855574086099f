import pytest

from layer_controller.edit_state import NO_OVERRIDE, VARIES, WEIGHT_CHOICES, OverrideEditState
from layer_core.edits import UNSPECIFIED, OverrideEdit
from layer_core.model import OverrideSet
from layer_core.resolver import summarize


def _state(*sets, patterns=("Hidden", "center", "Dashed")):
    return OverrideEditState(summarize(sets), patterns)


def test_untouched_state_produces_no_changes():
    state = _state(OverrideSet(color="#FF0000", line_weight=3))

    assert not state.dirty
    assert state.to_edit() == OverrideEdit()
    assert state.initial_color == "#FF0000"
    assert state.initial_weight_choice() == "3"
    assert state.initial_pattern_choice() == NO_OVERRIDE


def test_varies_choices_are_offered_only_when_values_differ():
    state = _state(OverrideSet(line_pattern="Dashed", line_weight=2), OverrideSet(line_pattern="Hidden", line_weight=2))

    assert state.pattern_choices() == [NO_OVERRIDE, VARIES, "center", "Dashed", "Hidden"]
    assert state.initial_pattern_choice() == VARIES
    assert state.weight_choices() == [NO_OVERRIDE, *WEIGHT_CHOICES]
    assert WEIGHT_CHOICES[0] == "1" and WEIGHT_CHOICES[-1] == "16"


def test_choices_map_to_edit_values():
    state = _state(OverrideSet())
    state.choose_color("#00ff00")
    state.choose_pattern("CENTER")
    state.choose_weight(NO_OVERRIDE)

    edit = state.to_edit()

    assert edit.color == "#00FF00"
    assert edit.line_pattern == "center"
    assert edit.line_weight == -1
    assert state.dirty


def test_choosing_varies_restores_untouched():
    state = _state(OverrideSet(line_weight=2), OverrideSet(line_weight=5))
    state.choose_weight("8")
    state.choose_weight(VARIES)
    state.choose_pattern(NO_OVERRIDE)

    edit = state.to_edit()

    assert edit.line_weight is UNSPECIFIED
    assert edit.line_pattern is None


def test_clear_overrides_everything_else():
    state = _state(OverrideSet(color="#FF0000"))
    state.choose_weight("4")
    state.request_clear()

    assert state.to_edit() == OverrideEdit.clear()
    assert state.to_edit().merge_onto(OverrideSet(color="#FF0000", line_weight=4)) == OverrideSet()


@pytest.mark.parametrize("bad", ["0", "17", "heavy"])
def test_invalid_weight_is_rejected(bad):
    with pytest.raises(ValueError):
        _state().choose_weight(bad)


def test_invalid_colour_and_pattern_are_rejected():
    state = _state()
    with pytest.raises(ValueError):
        state.choose_color("#XYZXYZ")
    with pytest.raises(ValueError):
        state.choose_pattern("Phantom")


def test_merge_keeps_untouched_fields():
    edit = OverrideEdit(line_weight=-1)

    assert edit.merge_onto(OverrideSet(line_pattern="Dashed", line_weight=5)) == OverrideSet(
        line_pattern="Dashed", line_weight=-1
    )
