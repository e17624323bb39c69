"""Cooperative timers for overlay simulations.

An overlay runs three timelines at once: a per-frame tick, a fixed-interval
spawn timer and, during a storm, one delayed restoration. All of them are
executed by a single owner so callbacks never interleave mid-way; other
threads hand work to that owner with ``submit()`` or wait for a result
with ``dispatch()``.

* LoopScheduler: one Socket.IO background task on the real monotonic clock.
* ManualScheduler: virtual clock advanced explicitly, for tests and headless
  simulation.
"""

import heapq
import itertools
import threading
import time
from collections import deque

from portal.logging import get_logger

logger = get_logger(__name__)

FRAME_INTERVAL = 1 / 60


class TimerHandle:
    """Cancellable reference to a scheduled callback."""

    __slots__ = ('when', 'seq', 'callback', 'interval', 'frame', 'cancelled')

    def __init__(self, when, seq, callback, interval=None, frame=False):
        self.when = when
        self.seq = seq
        self.callback = callback
        self.interval = interval
        self.frame = frame
        self.cancelled = False

    def __lt__(self, other):
        return (self.when, self.seq) < (other.when, other.seq)

    def cancel(self):
        self.cancelled = True


class Scheduler:
    """Timer heap shared by the concrete schedulers."""

    def __init__(self, frame_interval=FRAME_INTERVAL):
        self.frame_interval = frame_interval
        self._heap = []
        self._seq = itertools.count()
        self._lock = threading.RLock()
        self._submissions = deque()

    def now(self):
        raise NotImplementedError

    def _schedule(self, when, callback, interval=None, frame=False):
        handle = TimerHandle(when, next(self._seq), callback, interval, frame)
        with self._lock:
            heapq.heappush(self._heap, handle)
        return handle

    def call_later(self, delay, callback):
        """Run ``callback()`` once after ``delay`` seconds."""
        return self._schedule(self.now() + max(0.0, delay), callback)

    def call_every(self, interval, callback):
        """Run ``callback()`` every ``interval`` seconds until cancelled."""
        if interval <= 0:
            raise ValueError('interval must be positive')
        return self._schedule(self.now() + interval, callback, interval=interval)

    def request_frame(self, callback):
        """Run ``callback(timestamp)`` on the next display frame."""
        return self._schedule(self.now() + self.frame_interval, callback, frame=True)

    @staticmethod
    def cancel(handle):
        if handle is not None:
            handle.cancel()

    def submit(self, callback, *args):
        """Queue ``callback(*args)`` to run on the scheduler's owner."""
        self._submissions.append((callback, args))

    def dispatch(self, callback, *args):
        """Run ``callback(*args)`` on the owner and return its result."""
        return callback(*args)

    def pending(self):
        """Number of live (not cancelled) timers."""
        with self._lock:
            return sum(1 for h in self._heap if not h.cancelled)

    def next_deadline(self):
        with self._lock:
            while self._heap and self._heap[0].cancelled:
                heapq.heappop(self._heap)
            return self._heap[0].when if self._heap else None

    def _run_submissions(self):
        while self._submissions:
            callback, args = self._submissions.popleft()
            self._invoke(callback, *args)

    def _run_due(self, now):
        while True:
            with self._lock:
                if not self._heap or self._heap[0].when > now:
                    return
                handle = heapq.heappop(self._heap)
                if handle.cancelled:
                    continue
                fired_at = handle.when
                if handle.interval is not None:
                    handle.when += handle.interval
                    # drop intervals missed while the owner was stalled
                    while handle.when <= now:
                        handle.when += handle.interval
                    heapq.heappush(self._heap, handle)
            if handle.frame:
                self._invoke(handle.callback, fired_at)
            else:
                self._invoke(handle.callback)

    def _invoke(self, callback, *args):
        try:
            callback(*args)
        except Exception:
            logger.exception('scheduled_callback_failed',
                             callback=getattr(callback, '__qualname__', repr(callback)))


class ManualScheduler(Scheduler):
    """Scheduler on a virtual clock that only moves when advanced."""

    def __init__(self, frame_interval=FRAME_INTERVAL, start=0.0):
        super().__init__(frame_interval)
        self._now = start

    def now(self):
        return self._now

    def submit(self, callback, *args):
        self._invoke(callback, *args)

    def advance(self, seconds):
        """Move the clock forward, firing every timer that falls due on the way."""
        target = self._now + seconds
        while True:
            deadline = self.next_deadline()
            if deadline is None or deadline > target:
                break
            self._now = max(self._now, deadline)
            self._run_due(self._now)
        self._now = target
        self._run_submissions()


class LoopScheduler(Scheduler):
    """Runs every timer from a single Socket.IO background task."""

    def __init__(self, socketio, frame_interval=FRAME_INTERVAL, idle_interval=0.25):
        super().__init__(frame_interval)
        self.socketio = socketio
        self.idle_interval = idle_interval
        self._running = False
        self._task = None

    def now(self):
        return time.monotonic()

    @property
    def running(self):
        return self._running

    def start(self):
        if self._running:
            return self
        self._running = True
        self._task = self.socketio.start_background_task(self._run)
        return self

    def stop(self):
        self._running = False

    def dispatch(self, callback, *args):
        if not self._running:
            return callback(*args)

        outcome = {}

        def job():
            try:
                outcome['result'] = callback(*args)
            except Exception as e:
                outcome['error'] = e
            finally:
                outcome['done'] = True

        self._submissions.append((job, ()))
        while 'done' not in outcome:
            self.socketio.sleep(0.005)
        if 'error' in outcome:
            raise outcome['error']
        return outcome.get('result')

    def _run(self):
        logger.info('scheduler_started', frame_interval=self.frame_interval)
        while self._running:
            self._run_submissions()
            self._run_due(self.now())
            deadline = self.next_deadline()
            if deadline is None:
                delay = self.idle_interval
            else:
                delay = min(max(0.0, deadline - self.now()), self.idle_interval)
            self.socketio.sleep(delay)
        logger.info('scheduler_stopped')
