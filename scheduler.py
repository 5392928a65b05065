# scheduler.py
"""
Cooperative, single-threaded stand-in for animation-frame requests and
deferred timers. The GUI loop calls tick() once per rendered frame;
everything scheduled here runs on that thread, between frames.
"""

import itertools
import logging
import time

logger = logging.getLogger(__name__)


class FrameScheduler:
    def __init__(self, time_source=time.monotonic):
        self._time = time_source
        self._ids = itertools.count(1)
        self._frames = {}   # handle -> callback, in request order
        self._timers = {}   # handle -> (due, callback)

    def now(self):
        return self._time()

    def request_frame(self, callback):
        handle = next(self._ids)
        self._frames[handle] = callback
        return handle

    def cancel_frame(self, handle):
        self._frames.pop(handle, None)

    def set_timeout(self, delay, callback):
        handle = next(self._ids)
        self._timers[handle] = (self._time() + delay, callback)
        return handle

    def clear_timeout(self, handle):
        self._timers.pop(handle, None)

    def is_pending(self, handle):
        return handle in self._frames or handle in self._timers

    def tick(self, now=None):
        """Fire due timers, then the frames requested before this tick."""
        if now is None:
            now = self._time()

        due = sorted((when, h) for h, (when, _) in self._timers.items() if when <= now)
        for _, handle in due:
            # an earlier callback may have cleared it
            entry = self._timers.pop(handle, None)
            if entry is not None:
                self._run(entry[1])

        # frames requested from inside a callback wait for the next tick
        for handle in list(self._frames):
            callback = self._frames.pop(handle, None)
            if callback is not None:
                self._run(callback)

    def _run(self, callback):
        try:
            callback()
        except Exception:
            logger.exception("Scheduled callback failed")
