"""Optional resend cooldown per meeting.

Resending is unlimited unless a ResendLimiter is given to the dispatcher.
"""
import threading
import time
from collections import defaultdict
from typing import Callable, Dict, List

from telehealth.errors import ResendThrottled


class ResendLimiter:
    """
    In-memory sliding window limiter keyed by meeting id.

    Good for: single-process deployments.
    NOT for: multiple workers sharing one meeting store.
    """

    def __init__(
        self,
        max_sends: int = 3,
        window_seconds: int = 3600,
        clock: Callable[[], float] = time.monotonic
    ):
        """
        Args:
            max_sends: Deliveries allowed per meeting inside the window
            window_seconds: Window length
            clock: Monotonic seconds source
        """
        self.max_sends = max_sends
        self.window_seconds = window_seconds
        self.clock = clock
        self.send_log: Dict[str, List[float]] = defaultdict(list)
        self.lock = threading.Lock()

    def check(self, meeting_id: str):
        """
        Record a send attempt or refuse it.

        Raises:
            ResendThrottled: If the meeting already used its sends in the window
        """
        with self.lock:
            now = self.clock()
            cutoff = now - self.window_seconds

            self.send_log[meeting_id] = [ts for ts in self.send_log[meeting_id] if ts > cutoff]

            if len(self.send_log[meeting_id]) >= self.max_sends:
                oldest = min(self.send_log[meeting_id])
                retry_after = int(self.window_seconds - (now - oldest)) + 1
                raise ResendThrottled(meeting_id, retry_after=retry_after)

            self.send_log[meeting_id].append(now)

    def remaining(self, meeting_id: str) -> int:
        with self.lock:
            cutoff = self.clock() - self.window_seconds
            recent = [ts for ts in self.send_log[meeting_id] if ts > cutoff]
            return max(0, self.max_sends - len(recent))
