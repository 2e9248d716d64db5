"""In-process foreground/background signal."""

import logging

from librarysync.domain.ports import ForegroundCallback, IForegroundSignal, Unsubscribe

logger = logging.getLogger(__name__)


class ForegroundSignal(IForegroundSignal):
    """Foreground source driven from the outside via set_visible().

    Hey future me - in the desktop/browser world this was the visibility API. Here anything
    can drive it: the POST /library/foreground endpoint, a window-focus hook, a SIGCONT handler.
    Callbacks run synchronously inside set_visible(), so call it from the event loop thread.
    """

    def __init__(self, visible: bool = True) -> None:
        self._visible = visible
        self._callbacks: list[ForegroundCallback] = []

    @property
    def visible(self) -> bool:
        return self._visible

    def subscribe(self, callback: ForegroundCallback) -> Unsubscribe:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def set_visible(self, visible: bool) -> None:
        """Record the new visibility and notify subscribers if it changed."""
        if visible == self._visible:
            return
        self._visible = visible
        logger.info("foreground.changed", extra={"visible": visible})
        for callback in list(self._callbacks):
            try:
                callback(visible)
            except Exception:
                logger.exception("foreground.callback_failed")
