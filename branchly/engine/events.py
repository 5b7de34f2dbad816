"""Synchronous event registry shared by the state manager and the engine."""

from collections import defaultdict
from typing import Any, Callable, Dict, List, Optional

EventCallback = Callable[[Dict[str, Any]], Any]

NODE_ENTER = "nodeEnter"
NODE_EXIT = "nodeExit"
STATE_CHANGE = "stateChange"
AUTO_ADVANCE = "autoAdvance"
ERROR = "error"
COMPLETE = "complete"
RULE_EVENT = "ruleEvent"

ENGINE_EVENTS = {NODE_ENTER, NODE_EXIT, STATE_CHANGE, AUTO_ADVANCE, ERROR, COMPLETE, RULE_EVENT}


class EventEmitter:
    """
    Keeps listeners per event name and calls them in registration order.

    Listeners run before ``emit`` returns, on the caller's stack.
    """

    def __init__(self) -> None:
        self._listeners: Dict[str, List[EventCallback]] = defaultdict(list)

    def on(self, event: str, callback: EventCallback) -> Callable[[], None]:
        """Register ``callback``; the returned function unregisters it."""
        self._listeners[event].append(callback)
        return lambda: self.off(event, callback)

    def off(self, event: str, callback: Optional[EventCallback] = None) -> None:
        if callback is None:
            self._listeners.pop(event, None)
            return
        listeners = self._listeners.get(event, [])
        if callback in listeners:
            listeners.remove(callback)

    def listeners(self, event: str) -> List[EventCallback]:
        return list(self._listeners.get(event, []))

    def emit(self, event: str, payload: Dict[str, Any]) -> None:
        for callback in list(self._listeners.get(event, [])):
            callback(payload)
