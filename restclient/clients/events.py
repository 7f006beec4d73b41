"""
Observer hooks around request execution.

Hooks are notifications only. They never change the outcome of a request,
and an exception raised by a hook is logged and dropped.
"""

from typing import Any, Callable, List

from restclient.utils.logging import get_logger

Hook = Callable[[Any], None]


class RequestEvents:
    """Observer lists for the request lifecycle.

    - sending: the HttpRequest about to be dispatched
    - success: a returned HttpResponse with a 2xx status
    - complete: every returned HttpResponse
    - failure: a returned HttpResponse with a 4xx/5xx status
    - error: every raised TransportError
    """

    NAMES = ('sending', 'success', 'complete', 'failure', 'error')

    def __init__(self) -> None:
        self._hooks: dict[str, List[Hook]] = {name: [] for name in self.NAMES}
        self.logger = get_logger()

    def subscribe(self, name: str, hook: Hook) -> Hook:
        if name not in self._hooks:
            raise ValueError(f"Unknown event {name!r}, expected one of {', '.join(self.NAMES)}")
        self._hooks[name].append(hook)
        return hook

    def unsubscribe(self, name: str, hook: Hook) -> None:
        if hook in self._hooks.get(name, []):
            self._hooks[name].remove(hook)

    def on_sending(self, hook: Hook) -> Hook:
        return self.subscribe('sending', hook)

    def on_success(self, hook: Hook) -> Hook:
        return self.subscribe('success', hook)

    def on_complete(self, hook: Hook) -> Hook:
        return self.subscribe('complete', hook)

    def on_failure(self, hook: Hook) -> Hook:
        return self.subscribe('failure', hook)

    def on_error(self, hook: Hook) -> Hook:
        return self.subscribe('error', hook)

    def fire(self, name: str, payload: Any) -> None:
        for hook in list(self._hooks[name]):
            try:
                hook(payload)
            except Exception:
                self.logger.exception(f"Error in {name} hook {hook!r}")

    def clear(self) -> None:
        for hooks in self._hooks.values():
            hooks.clear()
