"""Client-side status polling contract.

After checkout the client polls ``GET /api/donations/<id>/status`` at a fixed
interval for a fixed time. When the ceiling is reached it stops watching; the
donation may still be confirmed later by the webhook, so a timeout is reported
as "still pending", never as success or failure.
"""
import logging
import time
from dataclasses import dataclass

from django.conf import settings

logger = logging.getLogger(__name__)

TERMINAL = ("SUCCESS", "FAILED")


@dataclass(frozen=True)
class PollResult:
    status: str
    timed_out: bool
    attempts: int

    @property
    def display(self) -> str:
        if self.status == "SUCCESS":
            return "confirmed"
        if self.status == "FAILED":
            return "failed"
        return "still processing" if self.timed_out else "processing"


def poll_status(fetch, interval=None, max_wait=None, sleep=time.sleep, clock=time.monotonic) -> PollResult:
    """Call ``fetch()`` until it returns a terminal status or ``max_wait`` elapses.

    ``fetch`` returns a status string; exceptions it raises are treated like a
    PENDING answer (the next tick simply tries again).
    """
    interval = settings.STATUS_POLL_INTERVAL if interval is None else interval
    max_wait = settings.STATUS_POLL_MAX_WAIT if max_wait is None else max_wait
    started = clock()
    attempts = 0
    status = "PENDING"
    while True:
        attempts += 1
        try:
            status = fetch() or "PENDING"
        except Exception:
            logger.debug("status poll attempt %s failed", attempts, exc_info=True)
            status = "PENDING"
        if status in TERMINAL:
            return PollResult(status, False, attempts)
        if clock() - started + interval > max_wait:
            return PollResult("PENDING", True, attempts)
        sleep(interval)
