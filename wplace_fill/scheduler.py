# wplace_fill/scheduler.py
from __future__ import annotations

"""
Charge-budgeted placement loop.

PlacementScheduler owns the analysis cache, the in-run submitted set and the
last charge snapshot. One cycle refreshes the account state, diffs the
template against the canvas, and then either waits for charges or submits one
batch per chunk. Zero remaining work completes the run; with protection on,
a ProtectionMonitor then keeps watching the canvas and restarts the loop when
pixels drift.

All waits go through one threading.Event, so stop() interrupts them. Running
and protecting are mutually exclusive: entering the loop cancels a live
monitor and the monitor is only armed once the loop has left. Collection and
submission hold one work lock, so the loop, place_now() and the monitor diff
never touch the analysis cache or the submitted set at the same time.
"""

import math
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Set, Tuple

import numpy as np

from .analyzer import AnalysisCache, TemplateAnalyzer
from .client import CanvasClient
from .collect import CollectResult, collect_pixels
from .constants import (
    CYCLE_DELAY_S,
    NO_CHARGES_DELAY_S,
    PROTECT_PERIOD_S,
    RATE_LIMIT_BACKOFF_S,
    RETRY_DELAY_S,
    WAIT_POLL_S,
    WAIT_REFRESH_EVERY,
)
from .core_types import (
    ChunkCoord,
    Charges,
    PixelKey,
    PlacementBatch,
    PlacementMode,
    SchedulerState,
    StatusSink,
)
from .errors import (
    ConfigurationError,
    RateLimitedError,
    ResourceNotReadyError,
    TransientNetworkError,
)
from .palette_data import owned_colors_from_bitmap
from .protection import ProtectionMonitor
from .template import Template
from .utils import format_hms, format_seconds_compact, key_value_pairs_to_string, log_status

Sleeper = Callable[[float], bool]  # returns True when the wait was interrupted
ProgressSink = Callable[[int, float], None]  # (remaining pixels, eta seconds)

_MODES: Tuple[str, ...] = ("scan", "random")


@dataclass
class SchedulerSettings:
    """Runtime switches and delays. Defaults come from constants.py."""

    mode: PlacementMode = "scan"
    sleep_mode: bool = False
    protect: bool = False
    cycle_delay_s: float = CYCLE_DELAY_S
    retry_delay_s: float = RETRY_DELAY_S
    no_charges_delay_s: float = NO_CHARGES_DELAY_S
    rate_limit_backoff_s: float = RATE_LIMIT_BACKOFF_S
    protect_period_s: float = PROTECT_PERIOD_S
    wait_poll_s: float = WAIT_POLL_S
    wait_refresh_every: int = WAIT_REFRESH_EVERY

    def as_pairs(self) -> List[Tuple[str, Any]]:
        return [
            ("Mode", self.mode),
            ("Sleep", self.sleep_mode),
            ("Protect", self.protect),
            ("Cycle", format_seconds_compact(self.cycle_delay_s)),
            ("Retry", format_seconds_compact(self.retry_delay_s)),
        ]


class PlacementScheduler:
    """Drives the remote canvas toward one template under the charge budget."""

    def __init__(
        self,
        client: CanvasClient,
        template: Optional[Template] = None,
        settings: Optional[SchedulerSettings] = None,
        *,
        status: Optional[StatusSink] = None,
        progress: Optional[ProgressSink] = None,
        sleeper: Optional[Sleeper] = None,
        rng: Optional[np.random.Generator] = None,
    ) -> None:
        self.client = client
        self.template = template
        self.settings = settings or SchedulerSettings()
        self.status: StatusSink = status or log_status
        self.progress = progress
        self.rng = rng if rng is not None else np.random.default_rng()

        self._stop = threading.Event()
        self._sleeper: Sleeper = sleeper or self._stop.wait
        self._role_lock = threading.Lock()
        self._work_lock = threading.Lock()
        self._role = "idle"  # idle | running | protecting
        self._monitor: Optional[ProtectionMonitor] = None
        self._thread: Optional[threading.Thread] = None

        self.state: SchedulerState = "idle"
        self.analyzer = TemplateAnalyzer()
        self.submitted: Set[PixelKey] = set()
        self.charges: Optional[Charges] = None
        self.last_error: Optional[BaseException] = None
        self.fatal_error: Optional[ConfigurationError] = None

        # Metrics
        self.placed = 0
        self.batches = 0
        self.rate_limited = 0
        self.errors = 0

    # State helpers

    @property
    def running(self) -> bool:
        return self._role == "running"

    @property
    def protecting(self) -> bool:
        return self._role == "protecting"

    @property
    def monitor(self) -> Optional[ProtectionMonitor]:
        return self._monitor

    def _set_state(self, state: SchedulerState) -> None:
        self.state = state

    def _sleep(self, seconds: float) -> bool:
        """Interruptible wait; True when stop() was requested."""
        if seconds > 0 and self._sleeper(seconds):
            return True
        return self._stop.is_set()

    def _report_progress(self, remaining: int, charges: Charges) -> None:
        if self.progress is not None:
            self.progress(remaining, remaining * charges.cooldown_ms / 1000.0)

    @staticmethod
    def charge_wait_ms(charges: Charges, needed: int) -> int:
        """Milliseconds until `needed` more whole charges have accrued."""
        needed = max(1, int(needed))
        partial = int(math.ceil((1.0 - charges.fraction) * charges.cooldown_ms))
        return partial + (needed - 1) * charges.cooldown_ms

    def metrics(self) -> Dict[str, Any]:
        return {
            "cache_hits": self.analyzer.hits,
            "cache_misses": self.analyzer.misses,
            "last_analysis_s": round(self.analyzer.last_analysis_s, 3),
            "placed": self.placed,
            "batches": self.batches,
            "rate_limited": self.rate_limited,
            "errors": self.errors,
        }

    def metrics_line(self) -> str:
        m = self.metrics()
        return key_value_pairs_to_string(
            [
                ("Cache", f"{m['cache_hits']} hit / {m['cache_misses']} miss"),
                ("Analysis", format_seconds_compact(m["last_analysis_s"])),
                ("Placed", m["placed"]),
                ("Batches", m["batches"]),
                ("429s", m["rate_limited"]),
                ("Errors", m["errors"]),
            ]
        )

    # Triggers

    def enable(self, template: Template) -> None:
        """Replace the active template; cached analysis and submitted set are dropped."""
        if self._role != "idle":
            self.stop()
        self.template = template
        self.analyzer.reset()
        self.submitted.clear()
        self.status(
            f"Template enabled: {template.display_name} ({template.pixel_count:,} px, "
            f"{len(template.chunked)} tile(s))"
        )

    def disable(self) -> None:
        self.stop()
        self.template = None
        self.analyzer.reset()
        self.submitted.clear()
        self.status("Template disabled")

    def set_protect(self, enabled: bool) -> None:
        self.settings.protect = bool(enabled)
        if not enabled:
            monitor = self._take_monitor()
            if monitor is not None:
                monitor.cancel()
                self._set_state("idle")
                self.status("Protection monitoring stopped")
        self.status(f"Protection mode {'enabled' if enabled else 'disabled'}")

    def set_sleep_mode(self, enabled: bool) -> None:
        self.settings.sleep_mode = bool(enabled)

    def set_mode(self, mode: str) -> None:
        if mode not in _MODES:
            raise ValueError(f"unknown placement mode: {mode!r} (use scan or random)")
        self.settings.mode = mode  # type: ignore[assignment]

    def start(self) -> bool:
        """Run the loop on a background thread. False when it is already running."""
        if self.template is None:
            raise ConfigurationError("no template enabled")
        if not self._enter_running():
            self.status("Already running")
            return False
        self._thread = threading.Thread(
            target=self._run_in_thread, name="PlacementScheduler", daemon=True
        )
        self._thread.start()
        return True

    def run(self) -> None:
        """Run the loop on the calling thread until complete or stopped."""
        if self.template is None:
            raise ConfigurationError("no template enabled")
        if not self._enter_running():
            raise RuntimeError("scheduler is already running")
        self._run_entered()

    def stop(self) -> None:
        """Cancel the loop and any live monitor. The protect flag is kept."""
        with self._role_lock:
            self._stop.set()
            monitor = self._take_monitor_locked()
        if monitor is not None:
            monitor.cancel()
            self.status("Protection monitoring paused (resumes on next start)")
        thread = self._thread
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=5.0)
            self._thread = None
        if self._role == "idle":
            self._set_state("idle")

    def resume_from_protection(self, monitor: ProtectionMonitor) -> bool:
        """
        Monitor callback: start a fresh run to repair drift.

        Refused unless `monitor` is still the armed monitor, so a check that
        finishes after stop() or set_protect(False) cannot restart placement.
        """
        if self.template is None:
            return False
        if not self._enter_running(from_monitor=monitor):
            self.status("Protection restart skipped: monitor no longer active")
            return False
        with self._work_lock:
            self.submitted.clear()
        self._thread = threading.Thread(
            target=self._run_in_thread, name="PlacementScheduler", daemon=True
        )
        self._thread.start()
        return True

    # Role handling

    def _enter_running(self, from_monitor: Optional[ProtectionMonitor] = None) -> bool:
        with self._role_lock:
            if from_monitor is not None:
                if self._role != "protecting" or self._monitor is not from_monitor:
                    return False
            elif self._role == "running":
                return False
            monitor, self._monitor = self._monitor, None
            self._role = "running"
            self._stop.clear()
        if monitor is not None:
            monitor.cancel()
        self._set_state("running")
        return True

    def _take_monitor_locked(self) -> Optional[ProtectionMonitor]:
        monitor, self._monitor = self._monitor, None
        if self._role == "protecting":
            self._role = "idle"
        return monitor

    def _take_monitor(self) -> Optional[ProtectionMonitor]:
        with self._role_lock:
            return self._take_monitor_locked()

    def _leave_running(self, completed: bool) -> None:
        # running -> protecting happens under one lock hold so observers never
        # see an idle gap between the two roles.
        monitor: Optional[ProtectionMonitor] = None
        with self._role_lock:
            self._role = "idle"
            if completed and self.settings.protect and not self._stop.is_set():
                monitor = ProtectionMonitor(self, period_s=self.settings.protect_period_s)
                self._monitor = monitor
                self._role = "protecting"
        if monitor is None:
            self._set_state("idle")
            return
        self._set_state("protecting")
        self.status("Protection mode active; monitoring template")
        monitor.start()

    def _run_in_thread(self) -> None:
        try:
            self._run_entered()
        except ConfigurationError as exc:
            self.fatal_error = exc

    def _run_entered(self) -> None:
        completed = False
        try:
            completed = self._loop()
        finally:
            self._leave_running(completed)

    # Main loop

    def _loop(self) -> bool:
        self.status(f"Started: {key_value_pairs_to_string(self.settings.as_pairs())}")
        while not self._stop.is_set():
            try:
                if self._cycle():
                    return True
            except ConfigurationError as exc:
                self.last_error = exc
                self.fatal_error = exc
                self.status(f"Configuration error: {exc}")
                raise
            except Exception as exc:
                self.last_error = exc
                self.errors += 1
                self.status(
                    f"Error: {exc}; retrying in "
                    f"{format_seconds_compact(self.settings.retry_delay_s)}"
                )
                if self._sleep(self.settings.retry_delay_s):
                    break
        self.status("Stopped")
        return False

    def _analysis(self, owned: List[int]) -> AnalysisCache:
        if self.template is None:
            raise ConfigurationError("no template enabled")
        return self.analyzer.analyze(self.template, owned)

    def _on_fetch_error(self, chunk: ChunkCoord, exc: Exception) -> None:
        self.status(f"Chunk {chunk[0]},{chunk[1]} unavailable ({exc}); treating as unplaced")

    def _collect(self, owned: List[int], count: int) -> CollectResult:
        return collect_pixels(
            self._analysis(owned),
            self.client,
            self.submitted,
            count,
            mode=self.settings.mode,
            rng=self.rng,
            on_fetch_error=self._on_fetch_error,
        )

    def diagnose(self, owned: List[int]) -> CollectResult:
        """Zero-quota diff that ignores the submitted set; used by the monitor."""
        with self._work_lock:
            return collect_pixels(
                self._analysis(owned),
                self.client,
                set(),
                0,
                mode=self.settings.mode,
                rng=self.rng,
                on_fetch_error=self._on_fetch_error,
            )

    def _cycle(self) -> bool:
        """One pass of the loop; True once the template is complete."""
        with self._work_lock:
            outcome, charges, remaining = self._collect_and_submit()
        if outcome == "complete":
            return True
        if outcome == "no_charges":
            self._sleep(self.settings.no_charges_delay_s)
        elif outcome == "no_colors":
            self._sleep(self.settings.retry_delay_s)
        elif outcome == "wait":
            self._set_state("waiting_for_charges")
            self._wait_for_charges(charges, remaining)
            self._set_state("running")
        else:
            self._sleep(self.settings.cycle_delay_s)
        return False

    def _collect_and_submit(self) -> Tuple[str, Optional[Charges], int]:
        """
        Refresh charges, diff and submit under the work lock.

        Returns (outcome, charges, remaining) where outcome is one of
        "no_charges", "no_colors", "complete", "wait" or "placed". Sleeping is
        left to the caller so the lock is never held across a wait.
        """
        user = self.client.query_user_state()
        charges = user.charges
        if charges is None:
            self.status(
                "No charge information; retrying in "
                f"{format_seconds_compact(self.settings.no_charges_delay_s)}"
            )
            return "no_charges", None, 0
        self.charges = charges

        owned = owned_colors_from_bitmap(user.extra_colors_bitmap)
        if not owned:
            self.status(
                "No owned colours; retrying in "
                f"{format_seconds_compact(self.settings.retry_delay_s)}"
            )
            return "no_colors", charges, 0

        self._set_state("collecting")
        result = self._collect(owned, charges.whole)
        self._report_progress(result.remaining, charges)

        if result.remaining == 0:
            self._set_state("complete")
            self.status("Template complete: every owned pixel is placed")
            return "complete", charges, 0

        if not charges.full and result.remaining > charges.whole:
            return "wait", charges, result.remaining

        self._set_state("submitting")
        placed = self._submit_all(result)
        self._set_state("running")
        self.status(
            f"Placed {placed} px ({result.border} border / {result.interior} interior "
            f"pending); {max(0, result.remaining - placed):,} remaining"
        )
        self.status(self.metrics_line())
        return "placed", charges, result.remaining - placed

    def _wait_for_charges(self, charges: Charges, remaining: int) -> None:
        target = min(charges.max, remaining)
        needed = max(1, target - charges.whole)
        wait_s = self.charge_wait_ms(charges, needed) / 1000.0
        self.status(
            f"Waiting {format_hms(wait_s)} for {needed} charge(s) "
            f"({charges.count:.2f}/{charges.max}, {remaining:,} px remaining)"
        )
        if self.settings.sleep_mode:
            self._sleep(wait_s)
            return

        poll = self.settings.wait_poll_s
        steps = max(1, int(math.ceil(wait_s / poll)))
        for step in range(1, steps + 1):
            left = wait_s - (step - 1) * poll
            if self.progress is not None:
                self.progress(remaining, left)
            if self._sleep(min(poll, left)):
                return
            if step % self.settings.wait_refresh_every != 0:
                continue
            try:
                fresh = self.client.query_user_state().charges
            except TransientNetworkError as exc:
                self.status(f"Charge refresh failed: {exc}")
                continue
            if fresh is not None:
                self.charges = fresh
                if fresh.full or fresh.whole >= target:
                    self.status(f"Charges ready ({fresh.count:.2f}/{fresh.max})")
                    return

    # Submission

    def _submit_once(self, batch: PlacementBatch) -> None:
        self.client.open_placement_surface(cancel=self._stop)
        resp = self.client.submit_placement(batch)
        chunk_x, chunk_y = batch.chunk
        if resp.rate_limited:
            raise RateLimitedError(f"placement in chunk {chunk_x},{chunk_y} rate limited")
        if not resp.ok:
            raise TransientNetworkError(
                f"placement in chunk {chunk_x},{chunk_y} failed: HTTP {resp.status}"
            )

    def _submit_batch(self, batch: PlacementBatch) -> bool:
        """Submit one batch, retrying through 429s. False when stopped first."""
        backoff = self.settings.rate_limit_backoff_s
        while not self._stop.is_set():
            try:
                self._submit_once(batch)
            except RateLimitedError:
                self.rate_limited += 1
                self.status(f"Rate limited; retrying in {format_seconds_compact(backoff)}")
                if self._sleep(backoff):
                    return False
                continue
            except ResourceNotReadyError:
                if self._stop.is_set():
                    return False
                raise
            self.submitted.update(batch.keys())
            self.placed += len(batch)
            self.batches += 1
            return True
        return False

    def _submit_all(self, result: CollectResult) -> int:
        placed = 0
        for batch in result.batches:
            if self._stop.is_set():
                break
            if self._submit_batch(batch):
                placed += len(batch)
        return placed

    def place_now(self) -> int:
        """
        Spend the charges available right now; returns pixels placed.

        Runs on the caller's thread but waits for the work lock, so a batch the
        loop is already submitting is seen as submitted before this diff runs.
        """
        if not self.running:
            self.status("Place now ignored: scheduler is not running")
            return 0
        if self.template is None:
            self.status("Place now ignored: no template")
            return 0
        with self._work_lock:
            if not self.running:
                self.status("Place now ignored: scheduler is not running")
                return 0
            user = self.client.query_user_state()
            charges = user.charges
            if charges is None or charges.whole < 1:
                self.status("Place now ignored: no charges available")
                return 0
            owned = owned_colors_from_bitmap(user.extra_colors_bitmap)
            if not owned:
                self.status("Place now ignored: no owned colours")
                return 0

            result = self._collect(owned, charges.whole)
            placed = self._submit_all(result)
        self.status(f"Place now: {placed} px placed, {max(0, result.remaining - placed):,} remaining")
        return placed


__all__ = ["PlacementScheduler", "SchedulerSettings", "Sleeper", "ProgressSink"]
