"""
State ownership for a running flow.

StateActionExecutor applies actions to plain state mappings and is shared
with the path tester. StateManager wraps one live state object, validating
every mutation against the flow's schema and running state rules after it.
"""

import copy
import logging
from typing import Any, Dict, List, Optional

from branchly.core.errors import StateActionError, StateValidationError
from branchly.core.ir import ExpressionLanguage, StateAction, StateRule
from branchly.engine.context import EngineContext
from branchly.engine.events import ERROR, RULE_EVENT, STATE_CHANGE, EventEmitter
from branchly.expressions import ExpressionEngine

logger = logging.getLogger(__name__)

FORCE_TRANSITION = "forceTransition"
SET_STATE = "setState"
TRIGGER_EVENT = "triggerEvent"


class StateActionExecutor:
    """Evaluates conditions and applies ``set`` actions against state mappings."""

    def __init__(self, engine: ExpressionEngine, enable_logging: bool = False):
        self.engine = engine
        self.enable_logging = enable_logging

    def _log(self, message: str, *args) -> None:
        logger.log(logging.WARNING if self.enable_logging else logging.DEBUG, message, *args)

    def evaluate_condition(self, expression: Optional[str], state: Dict[str, Any]) -> bool:
        """Evaluate a condition. Never raises: any failure counts as ``False``."""
        expr = (expression or "").strip()
        if not expr:
            return True
        try:
            return self.engine.evaluate_condition(expr, state)
        except Exception as e:
            self._log("Condition '%s' could not be evaluated: %s", expr, e)
            return False

    @staticmethod
    def set_nested_value(state: Dict[str, Any], path: str, value: Any) -> None:
        """Assign ``value`` at a dotted ``path``, creating intermediate objects."""
        keys = path.split(".") if path else []
        if not keys or not all(keys):
            raise StateActionError(f"Invalid path: {path}")

        target = state
        for key in keys[:-1]:
            if key not in target:
                target[key] = {}
            target = target[key]
            if not isinstance(target, dict):
                raise StateActionError(f"Invalid path: {path}")
        target[keys[-1]] = value

    def execute_action(self, action: StateAction, state: Dict[str, Any]) -> Dict[str, Any]:
        """Return a new state with ``action`` applied. ``state`` is not modified."""
        new_state = copy.deepcopy(state)
        self._apply(action, new_state)
        return new_state

    def execute_actions(self, actions: List[StateAction], state: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``actions`` in order to a copy of ``state``; the first failure aborts the batch."""
        new_state = copy.deepcopy(state)
        for action in actions:
            self._apply(action, new_state)
        return new_state

    def _apply(self, action: StateAction, state: Dict[str, Any]) -> None:
        label = f"{action.type}:{action.target}"
        if action.type != "set":
            raise StateActionError(f"State action {label} failed: Unknown action type: {action.type}")

        if action.expression:
            try:
                value = self.engine.evaluate_expression(action.expression, state)
            except Exception as e:
                raise StateActionError(f"State action {label} failed: {e}") from e
            if value is None:
                raise StateActionError(
                    f"State action {label} failed: expression '{action.expression}' evaluated to an undefined value"
                )
            if self.enable_logging:
                logger.info("Setting %s to %r.", action.target, value)
        else:
            value = copy.deepcopy(action.value)

        try:
            self.set_nested_value(state, action.target, value)
        except StateActionError as e:
            raise StateActionError(f"State action {label} failed: {e}") from e


class StateManager(EventEmitter):
    """
    Owns the live state object of one flow run.

    Every mutation is computed on a copy and validated before it is committed,
    so a failed call leaves the state exactly as it was. After each committed
    mutation the state rules run in declaration order.

    Events: ``stateChange`` ({oldState, newState}), ``error`` ({error,
    context}) and ``ruleEvent`` ({rule, event, value}).
    """

    def __init__(
        self,
        initial_state: Optional[Dict[str, Any]] = None,
        rules: Optional[List[StateRule]] = None,
        state_schema: Optional[Dict[str, Any]] = None,
        expression_language=ExpressionLanguage.CEL,
        context: Optional[EngineContext] = None,
        validate_on_change: bool = True,
        enable_logging: bool = False,
    ):
        super().__init__()
        self.context = context or EngineContext()
        self.rules = list(rules or [])
        self.state_schema = state_schema
        self.validate_on_change = validate_on_change
        self.expression_language = ExpressionLanguage(expression_language)
        self.executor = StateActionExecutor(
            self.context.get_engine(self.expression_language),
            enable_logging=enable_logging,
        )

        state = copy.deepcopy(initial_state or {})
        self._validate(state, "Initial state validation failed")
        self._state: Dict[str, Any] = state

    def get_state(self) -> Dict[str, Any]:
        return copy.deepcopy(self._state)

    def set_state(self, partial: Dict[str, Any]) -> None:
        updated = copy.deepcopy(self._state)
        updated.update(copy.deepcopy(partial))
        self._validate(updated, "State update validation failed")
        self._commit(updated)

    def execute_actions(self, actions: List[StateAction]) -> None:
        if not actions:
            return
        try:
            updated = self.executor.execute_actions(actions, self._state)
        except StateActionError as e:
            self.emit(ERROR, {"error": e, "context": {"type": "stateAction", "actions": list(actions)}})
            raise
        self._validate(updated, "Action execution validation failed")
        self._commit(updated)

    def evaluate_condition(self, expression: Optional[str]) -> bool:
        return self.executor.evaluate_condition(expression, self._state)

    def evaluate_expression(self, expression: str) -> Any:
        return self.executor.engine.evaluate_expression(expression, self._state)

    def reset(self, new_state: Optional[Dict[str, Any]] = None) -> None:
        state = copy.deepcopy(new_state or {})
        self._validate(state, "State reset validation failed")
        self._commit(state)

    def _commit(self, new_state: Dict[str, Any]) -> None:
        old_state = self._state
        self._state = new_state
        self.emit(STATE_CHANGE, {"oldState": copy.deepcopy(old_state), "newState": self.get_state()})
        self._evaluate_rules()

    def _schema_errors(self, state: Dict[str, Any]) -> List[str]:
        if not self.state_schema or not self.validate_on_change:
            return []
        return self.context.schema_validator.validate(state, self.state_schema).errors

    def _validate(self, state: Dict[str, Any], prefix: str) -> None:
        errors = self._schema_errors(state)
        if errors:
            error = StateValidationError(f"{prefix}: {', '.join(errors)}", errors)
            self.emit(ERROR, {"error": error, "context": {"type": "schemaValidation", "errors": errors}})
            raise error

    def _evaluate_rules(self) -> None:
        for rule in self.rules:
            if self.evaluate_condition(rule.condition):
                self._execute_rule(rule)

    def _execute_rule(self, rule: StateRule) -> None:
        if rule.action == FORCE_TRANSITION:
            self.emit(ERROR, {
                "error": StateActionError(f"Force transition to {rule.target}"),
                "context": {"type": FORCE_TRANSITION, "rule": rule, "target": rule.target},
            })
        elif rule.action == SET_STATE:
            if not rule.target or rule.value is None:
                return
            try:
                updated = self.executor.execute_action(StateAction(target=rule.target, value=rule.value), self._state)
                errors = self._schema_errors(updated)
                if errors:
                    raise StateValidationError(f"Rule action validation failed: {', '.join(errors)}", errors)
            except (StateActionError, StateValidationError) as e:
                self.emit(ERROR, {"error": e, "context": {"type": "ruleAction", "rule": rule}})
                return
            old_state = self._state
            self._state = updated
            self.emit(STATE_CHANGE, {"oldState": copy.deepcopy(old_state), "newState": self.get_state()})
        elif rule.action == TRIGGER_EVENT:
            self.emit(RULE_EVENT, {"rule": rule, "event": rule.target, "value": copy.deepcopy(rule.value)})
        else:
            self.emit(ERROR, {
                "error": StateActionError(f"Unknown rule action: {rule.action}"),
                "context": {"type": "ruleAction", "rule": rule},
            })
