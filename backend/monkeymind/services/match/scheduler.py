import time
from typing import Any, Callable


class TimerHandle:
    """A scheduled callback that may still be cancelled before it fires."""

    def __init__(self, delay: float, callback: Callable[..., Any], args: tuple, due_at: float):
        self.delay = delay
        self.callback = callback
        self.args = args
        self.due_at = due_at
        self.cancelled = False
        self.fired = False

    def cancel(self) -> None:
        self.cancelled = True

    @property
    def name(self) -> str:
        return getattr(self.callback, '__name__', repr(self.callback))


class BackgroundScheduler:
    """Run delayed callbacks on Socket.IO background tasks.

    - Each timer gets its own background task that sleeps, then runs the
      callback inside an application context
    - Cancelled handles are skipped when they wake up
    - Callback failures are logged; they never take the worker down
    """

    def __init__(self, app, socketio):
        self.app = app
        self.socketio = socketio

    def now(self) -> float:
        return time.time()

    def schedule(self, delay: float, callback: Callable[..., Any], *args) -> TimerHandle:
        handle = TimerHandle(delay, callback, args, due_at=self.now() + delay)
        self.app.logger.debug(f"[timer-set] task={handle.name} args={args} delay={delay}s")
        self.socketio.start_background_task(self._worker, handle)
        return handle

    def _sleep(self, handle: TimerHandle) -> None:
        hb = int(self.app.config.get('TIMER_HEARTBEAT_SEC', 0) or 0)
        if hb <= 0:
            self.socketio.sleep(handle.delay)
            return
        slept = 0.0
        while slept < handle.delay and not handle.cancelled:
            step = min(hb, handle.delay - slept)
            self.socketio.sleep(step)
            slept += step
            self.app.logger.info(f"[timer-heartbeat] task={handle.name} args={handle.args} remaining={max(0, handle.delay - slept)}s")

    def _worker(self, handle: TimerHandle) -> None:
        self._sleep(handle)
        if handle.cancelled:
            self.app.logger.debug(f"[timer-abort] task={handle.name} args={handle.args} cancelled")
            return
        handle.fired = True
        with self.app.app_context():
            self.app.logger.debug(f"[timer-fire] task={handle.name} args={handle.args}")
            try:
                handle.callback(*handle.args)
            except Exception:
                self.app.logger.exception(f"[timer-error] task={handle.name} args={handle.args}")
