"""
Ceremony event hooks.

Applications subscribe async callbacks to ceremony events, for example to
audit registrations or alert on a cloned authenticator. Callbacks receive the
event payload as keyword arguments. A callback that raises is logged and
skipped: it never changes the outcome of the ceremony that fired it.
"""
import logging
from collections import defaultdict
from enum import Enum
from typing import Any, Awaitable, Callable, DefaultDict, List, Union

logger = logging.getLogger(__name__)

Hook = Callable[..., Awaitable[Any]]


class Events(str, Enum):
    CREDENTIAL_REGISTERED = "credential_registered"  # credential
    USER_LOGGED_IN = "user_logged_in"  # credential
    REPLAY_DETECTED = "replay_detected"  # credential, sign_count


def _event_key(event: Union[Events, str]) -> str:
    return event.value if isinstance(event, Events) else event


class HookManager:
    """Per-event lists of async callbacks, run in subscription order."""

    def __init__(self):
        self._hooks: DefaultDict[str, List[Hook]] = defaultdict(list)

    def on(self, event: Union[Events, str]):
        """Decorator form of `register`."""
        def decorator(func: Hook) -> Hook:
            self.register(event, func)
            return func
        return decorator

    def register(self, event: Union[Events, str], func: Hook):
        key = _event_key(event)
        self._hooks[key].append(func)
        logger.debug(f"Hook '{func.__name__}' subscribed to '{key}'")

    def unregister(self, event: Union[Events, str], func: Hook) -> bool:
        """Remove a callback. Returns False when it was not subscribed."""
        hooks = self._hooks.get(_event_key(event), [])
        if func not in hooks:
            return False
        hooks.remove(func)
        return True

    def subscribers(self, event: Union[Events, str]) -> List[Hook]:
        return list(self._hooks.get(_event_key(event), []))

    async def trigger(self, event: Union[Events, str], **payload) -> int:
        """Run the callbacks for `event` one after another. Returns how many failed."""
        key = _event_key(event)
        failures = 0
        for hook in self.subscribers(key):
            try:
                await hook(**payload)
            except Exception as e:
                failures += 1
                logger.error(f"Hook '{hook.__name__}' failed on '{key}': {e}", exc_info=True)
        return failures
