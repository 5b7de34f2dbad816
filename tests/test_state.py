import pytest

from branchly.core.errors import StateActionError, StateValidationError
from branchly.core.ir import StateAction, StateRule
from branchly.engine.state import StateActionExecutor, StateManager
from branchly.expressions import CelExpressionEngine

SCHEMA = {
    "type": "object",
    "properties": {"score": {"type": "integer", "minimum": 0}},
    "required": ["score"],
}


def collect(emitter, event):
    seen = []
    emitter.on(event, seen.append)
    return seen


class TestStateActionExecutor:
    """Pure action application against plain mappings."""

    @pytest.fixture
    def executor(self):
        return StateActionExecutor(CelExpressionEngine())

    def test_literal_and_expression(self, executor):
        state = {"score": 1}
        new_state = executor.execute_actions(
            [StateAction(target="score", expression="score + 2"), StateAction(target="done", value=True)],
            state,
        )
        assert new_state == {"score": 3, "done": True}
        assert state == {"score": 1}

    def test_nested_target_creates_objects(self, executor):
        assert executor.execute_action(StateAction(target="a.b.c", value=1), {}) == {"a": {"b": {"c": 1}}}

    def test_set_nested_value_through_scalar_fails(self):
        with pytest.raises(StateActionError, match="Invalid path"):
            StateActionExecutor.set_nested_value({"a": 1}, "a.b", 2)

    @pytest.mark.parametrize("path", ["", "a..b", ".a"])
    def test_invalid_paths(self, path):
        with pytest.raises(StateActionError):
            StateActionExecutor.set_nested_value({}, path, 1)

    def test_undefined_expression_result_fails(self, executor):
        with pytest.raises(StateActionError, match="undefined"):
            executor.execute_action(StateAction(target="x", expression="missing"), {})

    def test_unknown_action_type(self, executor):
        with pytest.raises(StateActionError, match="Unknown action type"):
            executor.execute_action(StateAction(target="x", value=1, type="increment"), {})

    def test_literal_values_are_copied(self, executor):
        items = [1, 2]
        new_state = executor.execute_action(StateAction(target="items", value=items), {})
        new_state["items"].append(3)
        assert items == [1, 2]

    def test_condition_failures_are_false(self, executor):
        assert executor.evaluate_condition("", {}) is True
        assert executor.evaluate_condition(None, {}) is True
        assert executor.evaluate_condition("missing > 1", {}) is False
        assert executor.evaluate_condition("1 +", {}) is False
        assert executor.evaluate_condition("x > 1", {"x": 2}) is True


class TestStateManager:
    """The live state object of one run."""

    def test_get_state_returns_copy(self):
        manager = StateManager({"player": {"gold": 1}})
        state = manager.get_state()
        state["player"]["gold"] = 100
        assert manager.get_state() == {"player": {"gold": 1}}

    def test_initial_state_is_copied(self):
        initial = {"score": 1}
        manager = StateManager(initial)
        initial["score"] = 5
        assert manager.get_state() == {"score": 1}

    def test_set_state_merges_and_emits(self):
        manager = StateManager({"a": 1})
        changes = collect(manager, "stateChange")
        manager.set_state({"b": 2})

        assert manager.get_state() == {"a": 1, "b": 2}
        assert changes == [{"oldState": {"a": 1}, "newState": {"a": 1, "b": 2}}]

    def test_actions_are_all_or_nothing(self):
        manager = StateManager({"a": 1})
        errors = collect(manager, "error")
        actions = [
            StateAction(target="a", value=2),
            StateAction(target="b", expression="missing"),
        ]
        with pytest.raises(StateActionError):
            manager.execute_actions(actions)

        assert manager.get_state() == {"a": 1}
        assert errors[0]["context"]["type"] == "stateAction"

    def test_empty_actions_are_a_no_op(self):
        manager = StateManager({"a": 1})
        changes = collect(manager, "stateChange")
        manager.execute_actions([])
        assert changes == []

    def test_invalid_initial_state(self):
        with pytest.raises(StateValidationError, match="Initial state validation failed"):
            StateManager({}, state_schema=SCHEMA)

    def test_schema_violation_leaves_state_unchanged(self):
        manager = StateManager({"score": 1}, state_schema=SCHEMA)
        errors = collect(manager, "error")

        with pytest.raises(StateValidationError):
            manager.execute_actions([StateAction(target="score", value=-1)])
        with pytest.raises(StateValidationError):
            manager.set_state({"score": "x"})

        assert manager.get_state() == {"score": 1}
        assert [e["context"]["type"] for e in errors] == ["schemaValidation", "schemaValidation"]

    def test_validation_can_be_disabled(self):
        manager = StateManager({"score": 1}, state_schema=SCHEMA, validate_on_change=False)
        manager.set_state({"score": -1})
        assert manager.get_state() == {"score": -1}

    def test_reset(self):
        manager = StateManager({"a": 1})
        manager.set_state({"a": 2})
        manager.reset({"a": 0})
        assert manager.get_state() == {"a": 0}
        manager.reset()
        assert manager.get_state() == {}

    def test_evaluate(self):
        manager = StateManager({"score": 3})
        assert manager.evaluate_condition("score > 2") is True
        assert manager.evaluate_expression("score * 2") == 6


class TestStateRules:
    """Rules run after each committed mutation."""

    def test_set_state_rule(self):
        rule = StateRule(condition="score >= 10", action="setState", target="level", value="expert")
        manager = StateManager({"score": 0}, rules=[rule])
        changes = collect(manager, "stateChange")

        manager.set_state({"score": 10})
        assert manager.get_state() == {"score": 10, "level": "expert"}
        assert len(changes) == 2

    def test_trigger_event_rule(self):
        rule = StateRule(condition="score >= 10", action="triggerEvent", target="levelUp", value={"to": 2})
        manager = StateManager({"score": 0}, rules=[rule])
        fired = collect(manager, "ruleEvent")

        manager.set_state({"score": 5})
        assert fired == []
        manager.set_state({"score": 12})
        assert fired == [{"rule": rule, "event": "levelUp", "value": {"to": 2}}]

    def test_force_transition_rule_is_signalled_as_error_event(self):
        rule = StateRule(condition="score < 0", action="forceTransition", target="game-over")
        manager = StateManager({"score": 0}, rules=[rule])
        errors = collect(manager, "error")

        manager.set_state({"score": -1})
        assert errors[0]["context"] == {"type": "forceTransition", "rule": rule, "target": "game-over"}

    def test_rule_set_state_is_schema_checked(self):
        rule = StateRule(condition="score > 5", action="setState", target="score", value=-1)
        manager = StateManager({"score": 0}, rules=[rule], state_schema=SCHEMA)
        errors = collect(manager, "error")

        manager.set_state({"score": 6})
        assert manager.get_state() == {"score": 6}
        assert len(errors) == 1
        assert errors[0]["context"]["type"] == "ruleAction"

    def test_unknown_rule_action(self):
        rule = StateRule(condition="true", action="explode")
        manager = StateManager({}, rules=[rule])
        errors = collect(manager, "error")
        manager.set_state({"a": 1})
        assert errors[0]["context"]["type"] == "ruleAction"

    def test_rule_condition_errors_are_ignored(self):
        rule = StateRule(condition="missing.field > 1", action="triggerEvent", target="x")
        manager = StateManager({}, rules=[rule])
        fired = collect(manager, "ruleEvent")
        manager.set_state({"a": 1})
        assert fired == []
