import threading
from typing import Callable, Dict, Optional, Tuple

from chatbridge.config import settings
from chatbridge.logging_config import get_logger

logger = get_logger("inactivity")


class InactivityTimers:
    """Per-chat single-shot timers with cancel-and-replace semantics.

    Every activity for a chat re-arms its timer; `on_fire(chat_id)` runs once
    the chat has been quiet for `delay_seconds`. Each arming carries its own
    token, so a replaced timer that fires anyway is ignored.
    """

    def __init__(
        self,
        delay_seconds: float,
        on_fire: Callable[[str], None],
        timer_factory: Callable[..., threading.Timer] = threading.Timer,
    ):
        self.delay_seconds = delay_seconds
        self.on_fire = on_fire
        self.timer_factory = timer_factory
        self._timers: Dict[str, Tuple[threading.Timer, object]] = {}
        self._lock = threading.Lock()

    def touch(self, chat_id: str) -> None:
        with self._lock:
            previous = self._timers.pop(chat_id, None)
            if previous is not None:
                previous[0].cancel()

            token = object()
            timer = self.timer_factory(self.delay_seconds, self._fire, args=(chat_id, token))
            timer.daemon = True
            self._timers[chat_id] = (timer, token)
            timer.start()

    def _fire(self, chat_id: str, token: object) -> None:
        with self._lock:
            current = self._timers.get(chat_id)
            if current is None or current[1] is not token:
                return
            del self._timers[chat_id]

        logger.info(f"Chat {chat_id} quiet for {self.delay_seconds}s, running analysis")
        try:
            self.on_fire(chat_id)
        except Exception:
            logger.exception(f"Inactivity handler failed for {chat_id}")

    def cancel(self, chat_id: str) -> bool:
        with self._lock:
            current = self._timers.pop(chat_id, None)
        if current is None:
            return False
        current[0].cancel()
        return True

    def cancel_all(self) -> None:
        with self._lock:
            timers = [timer for timer, _ in self._timers.values()]
            self._timers.clear()
        for timer in timers:
            timer.cancel()

    def pending(self) -> list[str]:
        with self._lock:
            return list(self._timers)


_timers: Optional[InactivityTimers] = None


def get_inactivity_timers() -> InactivityTimers:
    global _timers
    if _timers is None:
        from chatbridge.services.analysis_service import analyze_inactive_chat

        _timers = InactivityTimers(settings.inactivity_seconds, analyze_inactive_chat)
    return _timers
