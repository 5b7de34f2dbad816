"""FlowEngine: stateful step-by-step execution of a flow definition."""

import copy
import dataclasses
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Deque, Dict, List, Optional

from branchly.core.errors import (
    FlowError,
    FlowNotStartedError,
    FlowStateError,
    InvalidChoiceError,
    NodeNotFoundError,
    NoTransitionError,
)
from branchly.core.ir import AutoAdvanceMode, FlowDefinition, Node, NodeType, Outlet
from branchly.engine import events
from branchly.engine.context import EngineContext
from branchly.engine.events import EventEmitter
from branchly.engine.interpolation import ContentInterpolator, needs_interpolation
from branchly.engine.state import FORCE_TRANSITION, StateManager

logger = logging.getLogger(__name__)

CONTINUE_LABEL = "Continue"
DISABLED_REASON = "Condition not met"


@dataclass
class EngineOptions:
    initial_state: Dict[str, Any] = field(default_factory=dict)
    enable_history: bool = True
    max_history_size: int = 100
    auto_advance: Optional[AutoAdvanceMode] = None
    show_disabled_choices: bool = False
    enable_logging: bool = False
    max_auto_advance_steps: int = 100
    validate_state: bool = True


@dataclass
class AnnotatedNode:
    node: Node
    type: NodeType


@dataclass
class Choice:
    id: str
    label: str
    outlet_id: str
    description: Optional[str] = None
    disabled: bool = False
    disabled_reason: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ExecutionStep:
    node: AnnotatedNode
    choice_id: Optional[str]
    timestamp: datetime
    state: Dict[str, Any]


@dataclass
class ExecutionResult:
    node: AnnotatedNode
    choices: List[Choice]
    is_complete: bool
    can_go_back: bool
    state: Dict[str, Any]
    auto_advanced: bool = False


def select_auto_advance_outlet(outlets: List[Outlet], evaluate: Callable[[Optional[str]], bool]) -> Optional[Outlet]:
    """
    If/elif/else selection: the first conditional outlet whose condition holds,
    otherwise the first outlet without a condition.
    """
    for outlet in outlets:
        if outlet.condition and evaluate(outlet.condition):
            return outlet
    for outlet in outlets:
        if not outlet.condition:
            return outlet
    return None


def should_auto_advance(node: Node, *modes: Optional[AutoAdvanceMode]) -> bool:
    """``never`` in any mode wins, then the node's own flag, then ``always`` in any mode."""
    if AutoAdvanceMode.NEVER in modes:
        return False
    return node.is_auto_advance or AutoAdvanceMode.ALWAYS in modes


class FlowEngine(EventEmitter):
    """
    Executes a flow definition, tracking the current node, state and history.

    Events: nodeEnter, nodeExit, stateChange, autoAdvance, complete, ruleEvent
    and error. Listeners are called synchronously.
    """

    def __init__(
        self,
        flow: FlowDefinition,
        options: Optional[EngineOptions] = None,
        context: Optional[EngineContext] = None,
        state_manager: Optional[StateManager] = None,
    ):
        super().__init__()
        self.flow = flow
        self.options = options or EngineOptions()
        self.context = context or EngineContext()
        self.current_node: Optional[Node] = None
        self._history: Deque[ExecutionStep] = deque(maxlen=max(1, self.options.max_history_size))

        self._transitioning = False
        self._suppress_forced = False
        self._pending_forced: Optional[str] = None

        if state_manager is None:
            state_manager = StateManager(
                initial_state=self._initial_state(),
                rules=flow.state_rules,
                state_schema=flow.state_schema,
                expression_language=flow.expression_language,
                context=self.context,
                validate_on_change=self.options.validate_state,
                enable_logging=self.options.enable_logging,
            )
        self.state_manager = state_manager
        self.interpolator = ContentInterpolator(
            expression_language=flow.expression_language,
            context=self.context,
            enable_logging=self.options.enable_logging,
        )

        self.state_manager.on(events.STATE_CHANGE, lambda data: self.emit(events.STATE_CHANGE, data))
        self.state_manager.on(events.RULE_EVENT, lambda data: self.emit(events.RULE_EVENT, data))
        self.state_manager.on(events.ERROR, self._on_state_error)

    def _initial_state(self) -> Dict[str, Any]:
        state = self.flow.copy_initial_state()
        state.update(copy.deepcopy(self.options.initial_state or {}))
        return state

    # Event shortcuts

    def on_node_enter(self, callback):
        return self.on(events.NODE_ENTER, callback)

    def on_node_exit(self, callback):
        return self.on(events.NODE_EXIT, callback)

    def on_state_change(self, callback):
        return self.on(events.STATE_CHANGE, callback)

    def on_auto_advance(self, callback):
        return self.on(events.AUTO_ADVANCE, callback)

    def on_error(self, callback):
        return self.on(events.ERROR, callback)

    def on_complete(self, callback):
        return self.on(events.COMPLETE, callback)

    # Public API

    def start(self) -> ExecutionResult:
        """Enter the start node, following any auto-advance chain from it."""
        if self.current_node is not None:
            raise FlowStateError("Flow already started. Call reset() first.")
        start_node = self.flow.get_node(self.flow.start_node_id)
        if start_node is None:
            raise NodeNotFoundError(f'Start node with id "{self.flow.start_node_id}" not found', self.flow.start_node_id)
        return self._transition(start_node)

    def next(self, choice_id: Optional[str] = None) -> ExecutionResult:
        """
        Advance from the current node.

        With ``choice_id`` the named outlet of the current node is taken. Without
        it a decision node takes its first satisfied outlet (or stays put when
        none is satisfied) and any other non-end node with a single outlet
        follows it.
        """
        if self.current_node is None:
            raise FlowNotStartedError("No current node. Call start() first.")

        node = self.current_node
        node_type = self._node_type(node)

        if choice_id:
            outlet = next((o for o in node.outlets if o.id == choice_id), None)
            if outlet is None:
                raise InvalidChoiceError(f"Invalid choice: {choice_id}")
            if not self._outlet_enabled(outlet):
                raise InvalidChoiceError(f"Invalid choice: {choice_id} ({DISABLED_REASON})")
            return self._transition(self._target(outlet), outlet)

        if node_type == NodeType.DECISION:
            for outlet in node.outlets:
                if self._outlet_enabled(outlet):
                    return self._transition(self._target(outlet), outlet)
            return self._result()

        if node_type != NodeType.END and len(node.outlets) == 1:
            outlet = node.outlets[0]
            return self._transition(self._target(outlet), outlet)

        raise NoTransitionError("No valid transition found")

    def go_back(self) -> ExecutionResult:
        if self.current_node is None:
            raise FlowNotStartedError("No current node. Call start() first.")
        if not self.can_go_back():
            raise FlowStateError("Cannot go back")

        self._history.pop()
        previous = self._history[-1]
        self._suppress_forced = True
        try:
            self.state_manager.reset(previous.state)
        finally:
            self._suppress_forced = False
        self.current_node = previous.node.node
        return self._result()

    def reset(self) -> None:
        self.current_node = None
        self._history.clear()
        self._suppress_forced = True
        try:
            self.state_manager.reset(self._initial_state())
        finally:
            self._suppress_forced = False

    def get_current_node(self) -> Optional[AnnotatedNode]:
        if self.current_node is None:
            return None
        return AnnotatedNode(node=self._interpolated(self.current_node), type=self._node_type(self.current_node))

    def get_available_choices(self) -> List[Choice]:
        node = self.current_node
        if node is None or self._node_type(node) == NodeType.END:
            return []

        state = self.state_manager.get_state()
        show_disabled = self.options.show_disabled_choices
        choices: List[Choice] = []
        index = 0
        for outlet in node.outlets:
            enabled = self._outlet_enabled(outlet)
            if not enabled and not show_disabled:
                continue
            index += 1
            label = outlet.label or f"Choice {index}"
            description = outlet.metadata.get("description")
            choices.append(Choice(
                id=outlet.id,
                label=self.interpolator.interpolate(label, state).content,
                outlet_id=outlet.id,
                description=description if isinstance(description, str) else None,
                disabled=not enabled,
                disabled_reason=None if enabled else DISABLED_REASON,
                metadata=dict(outlet.metadata),
            ))

        enabled_choices = [c for c in choices if not c.disabled]
        if len(enabled_choices) == 1:
            only = enabled_choices[0]
            outlet = next(o for o in node.outlets if o.id == only.outlet_id)
            if not (outlet.label or "").strip():
                target = self.flow.get_node(outlet.to)
                only.label = CONTINUE_LABEL
                only.description = f"Continue to {(target.title if target else '') or 'next step'}"
        return choices

    def get_state(self) -> Dict[str, Any]:
        return self.state_manager.get_state()

    def get_history(self) -> List[ExecutionStep]:
        return list(self._history)

    def can_go_back(self) -> bool:
        return self.options.enable_history and len(self._history) > 1

    def is_complete(self) -> bool:
        return self.current_node is not None and self._node_type(self.current_node) == NodeType.END

    # Transitions

    def _transition(self, node: Node, outlet: Optional[Outlet] = None) -> ExecutionResult:
        """Enter ``node`` and keep following forced and auto-advance hops."""
        self._transitioning = True
        hops = 0
        try:
            while True:
                self._enter(node, outlet)

                hop = self._next_hop(node)
                if hop is None:
                    break
                next_outlet, next_node = hop

                if hops >= self.options.max_auto_advance_steps:
                    self.emit(events.ERROR, {
                        "error": FlowStateError(
                            f"Auto-advance stopped at node \"{node.id}\" after {hops} steps"
                        ),
                        "context": {"type": "autoAdvanceLimit", "node": node, "steps": hops},
                    })
                    break

                hops += 1
                logger.debug("Auto-advancing %s -> %s", node.id, next_node.id)
                self.emit(events.AUTO_ADVANCE, {
                    "from": node,
                    "to": next_node,
                    "condition": next_outlet.condition if next_outlet else None,
                    "outlet": next_outlet,
                })
                node, outlet = next_node, next_outlet
        finally:
            self._transitioning = False
            self._pending_forced = None
        return self._result(auto_advanced=hops > 0)

    def _enter(self, node: Node, outlet: Optional[Outlet]) -> None:
        choice_id = outlet.id if outlet else None
        if self.current_node is not None:
            self.emit(events.NODE_EXIT, {"node": self.current_node, "choice": choice_id, "state": self.get_state()})

        # Outlet and node actions commit together or not at all.
        actions = list(outlet.actions) if outlet is not None else []
        actions.extend(node.actions)
        self.state_manager.execute_actions(actions)

        self.current_node = node

        node_type = self._node_type(node)
        if self.options.enable_history:
            self._history.append(ExecutionStep(
                node=AnnotatedNode(node=node, type=node_type),
                choice_id=choice_id,
                timestamp=datetime.now(),
                state=self.get_state(),
            ))

        logger.debug("Entered node %s (%s)", node.id, node_type.value)
        self.emit(events.NODE_ENTER, {"node": node, "state": self.get_state()})
        if node_type == NodeType.END:
            self.emit(events.COMPLETE, {"node": node, "state": self.get_state()})

    def _next_hop(self, node: Node):
        if self._pending_forced is not None:
            target_id, self._pending_forced = self._pending_forced, None
            target = self.flow.get_node(target_id)
            if target is not None:
                return None, target
            self._emit_forced_missing(target_id)

        if not should_auto_advance(node, self.flow.auto_advance_mode, self.options.auto_advance):
            return None
        if not node.outlets:
            return None

        selected = select_auto_advance_outlet(node.outlets, self.state_manager.evaluate_condition)
        if selected is None:
            self.emit(events.ERROR, {
                "error": NoTransitionError(f'No valid outlet found for auto-advance from node "{node.id}"'),
                "context": {"type": "autoAdvance", "node": node, "availableOutlets": list(node.outlets)},
            })
            return None

        target = self.flow.get_node(selected.to)
        if target is None:
            self.emit(events.ERROR, {
                "error": NodeNotFoundError(f'Node with id "{selected.to}" not found', selected.to),
                "context": {"type": "autoAdvance", "node": node, "outlet": selected},
            })
            return None
        return selected, target

    def _on_state_error(self, data: Dict[str, Any]) -> None:
        context = data.get("context") or {}
        if context.get("type") != FORCE_TRANSITION or not context.get("target"):
            self.emit(events.ERROR, data)
            return

        target_id = context["target"]
        if self._suppress_forced or (self.current_node is None and not self._transitioning):
            logger.debug("Dropping forced transition to %s", target_id)
            return
        if self._transitioning:
            if self._pending_forced is None:
                self._pending_forced = target_id
            else:
                logger.debug("Forced transition to %s already pending; dropping %s", self._pending_forced, target_id)
            return

        target = self.flow.get_node(target_id)
        if target is None:
            self._emit_forced_missing(target_id)
            return
        try:
            self._transition(target)
        except FlowError as e:
            self.emit(events.ERROR, {"error": e, "context": {"type": "forcedTransition", "targetNodeId": target_id}})

    def _emit_forced_missing(self, target_id: str) -> None:
        self.emit(events.ERROR, {
            "error": NodeNotFoundError(f'Target node "{target_id}" not found for forced transition', target_id),
            "context": {"type": "forcedTransition", "targetNodeId": target_id},
        })

    # Helpers

    def _node_type(self, node: Node) -> NodeType:
        node_type = self.flow.node_type(node.id)
        if node_type is None:
            raise NodeNotFoundError(f"Node type not found for node: {node.id}", node.id)
        return node_type

    def _target(self, outlet: Outlet) -> Node:
        target = self.flow.get_node(outlet.to)
        if target is None:
            raise NodeNotFoundError(f'Node with id "{outlet.to}" not found', outlet.to)
        return target

    def _outlet_enabled(self, outlet: Outlet) -> bool:
        return self.state_manager.evaluate_condition(outlet.condition)

    def _interpolated(self, node: Node) -> Node:
        fields = {}
        errors: List[str] = []
        state = None
        for name in ("title", "content"):
            text = getattr(node, name)
            if needs_interpolation(text):
                if state is None:
                    state = self.get_state()
                result = self.interpolator.interpolate(text, state)
                fields[name] = result.content
                errors.extend(result.errors)

        if errors:
            level = logging.WARNING if self.options.enable_logging else logging.DEBUG
            logger.log(level, "Interpolation errors for node %s: %s", node.id, errors)
        if not fields:
            return node
        return dataclasses.replace(node, **fields)

    def _result(self, auto_advanced: bool = False) -> ExecutionResult:
        if self.current_node is None:
            raise FlowNotStartedError("No current node. Call start() first.")
        return ExecutionResult(
            node=self.get_current_node(),
            choices=self.get_available_choices(),
            is_complete=self.is_complete(),
            can_go_back=self.can_go_back(),
            state=self.get_state(),
            auto_advanced=auto_advanced,
        )
