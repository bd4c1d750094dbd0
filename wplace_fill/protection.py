# wplace_fill/protection.py
from __future__ import annotations

"""
Periodic drift check armed after a completed run.

Every period the monitor diffs the template against the canvas without
spending charges. Drift with at least one whole charge restarts the
scheduler; drift without charges only raises an alert. A failed check is
counted and reported, and monitoring continues.
"""

import threading
from typing import TYPE_CHECKING, Optional

from .constants import PROTECT_PERIOD_S
from .palette_data import owned_colors_from_bitmap

if TYPE_CHECKING:
    from .scheduler import PlacementScheduler


class ProtectionMonitor:
    def __init__(
        self, scheduler: "PlacementScheduler", period_s: float = PROTECT_PERIOD_S
    ) -> None:
        self._scheduler = scheduler
        self.period_s = period_s
        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self.checks = 0
        self.errors = 0
        self.last_remaining: Optional[int] = None

    @property
    def active(self) -> bool:
        return self._thread is not None and not self._stop_event.is_set()

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="ProtectionMonitor", daemon=True
        )
        self._thread.start()

    def cancel(self) -> None:
        """Stop monitoring. Safe to call from the monitor's own thread."""
        self._stop_event.set()
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)

    def _loop(self) -> None:
        while not self._stop_event.wait(timeout=self.period_s):
            self.check_once()

    def check_once(self) -> str:
        """
        Run one integrity check.

        Returns one of "skipped", "intact", "alert", "rearmed" or "error".
        """
        sched = self._scheduler
        if sched.template is None:
            return "skipped"
        try:
            user = sched.client.query_user_state()
            owned = owned_colors_from_bitmap(user.extra_colors_bitmap)
            if not owned:
                return "skipped"
            sched.status("Checking template integrity...")
            result = sched.diagnose(owned)
        except Exception as exc:
            self.errors += 1
            sched.status(f"Protection check failed: {exc}")
            return "error"
        if self._stop_event.is_set():
            return "skipped"

        self.checks += 1
        self.last_remaining = result.remaining
        if result.remaining == 0:
            sched.status("Protection check: all pixels intact")
            return "intact"

        sched.status(f"Protection alert: {result.remaining:,} px need fixing")
        charges = user.charges
        if charges is not None and charges.whole > 0:
            sched.status(
                f"Fixing up to {min(charges.whole, result.remaining)} px; restarting placement"
            )
            if not sched.resume_from_protection(self):
                return "skipped"
            self.cancel()
            return "rearmed"

        sched.status("Damage detected but no charges available")
        return "alert"


__all__ = ["ProtectionMonitor"]
