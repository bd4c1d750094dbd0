# wplace_fill/client.py
from __future__ import annotations

"""
Network interface to the shared canvas.

CanvasClient is the only thing the scheduler talks to. HttpCanvasClient is the
requests-based implementation against the public backend: chunk images,
pixel placement and the account (/me) endpoint. Auth is injected here (token
in the placement body, optional cookies/headers on the session) so the core
never sees it.
"""

import os
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Mapping, Optional

import requests

from .constants import (
    API_BASE_URL,
    DEFAULT_COOLDOWN_MS,
    REQUEST_TIMEOUT_S,
    SURFACE_POLL_S,
    SURFACE_WAIT_S,
    TILES_URL,
    TOKEN_ENV_VAR,
)
from .core_types import Charges, PlacementBatch, PlacementResponse, U8Image, UserState
from .errors import ResourceNotReadyError, TransientNetworkError
from .utils import debug_log, decode_png_rgba


class CanvasClient(ABC):
    """Remote canvas operations used by the scheduler."""

    @abstractmethod
    def fetch_chunk(self, chunk_x: int, chunk_y: int) -> Optional[U8Image]:
        """Current RGBA image of one chunk, or None when the chunk does not exist."""

    @abstractmethod
    def submit_placement(self, batch: PlacementBatch) -> PlacementResponse:
        """Place the batch's pixels inside its chunk."""

    @abstractmethod
    def query_user_state(self) -> UserState:
        """Charges and owned-colour bitmap of the current account."""

    def open_placement_surface(self, cancel: Optional[threading.Event] = None) -> None:
        """Make sure a placement can be submitted right now. Setting `cancel` aborts a wait."""


def parse_user_state(data: Mapping[str, Any]) -> UserState:
    """Build a UserState from the /me JSON payload."""
    if not isinstance(data, Mapping):
        raise TransientNetworkError(f"malformed user state: {type(data).__name__} payload")
    raw = data.get("charges")
    charges: Optional[Charges] = None
    try:
        if isinstance(raw, Mapping):
            charges = Charges(
                count=float(raw.get("count", 0.0)),
                max=int(raw.get("max", 0)),
                cooldown_ms=int(raw.get("cooldownMs") or DEFAULT_COOLDOWN_MS),
            )
        bitmap = int(data.get("extraColorsBitmap") or 0)
    except (TypeError, ValueError) as exc:
        raise TransientNetworkError(f"malformed user state: {exc}") from exc
    return UserState(charges=charges, extra_colors_bitmap=bitmap)


class HttpCanvasClient(CanvasClient):
    """CanvasClient over HTTP with a shared requests.Session."""

    def __init__(
        self,
        token: Optional[str] = None,
        *,
        api_base: str = API_BASE_URL,
        tiles_url: str = TILES_URL,
        session: Optional[requests.Session] = None,
        cookies: Optional[Dict[str, str]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: float = REQUEST_TIMEOUT_S,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        surface_wait_s: float = SURFACE_WAIT_S,
        surface_poll_s: float = SURFACE_POLL_S,
        debug: bool = False,
    ) -> None:
        self.token = token or os.environ.get(TOKEN_ENV_VAR)
        self.api_base = api_base.rstrip("/")
        self.tiles_url = tiles_url.rstrip("/")
        self.session = session or requests.Session()
        if cookies:
            self.session.cookies.update(cookies)
        if headers:
            self.session.headers.update(headers)
        self.timeout = timeout
        self.token_provider = token_provider
        self.surface_wait_s = surface_wait_s
        self.surface_poll_s = surface_poll_s
        self.debug = debug

    def _current_token(self) -> Optional[str]:
        if self.token_provider is not None:
            fresh = self.token_provider()
            if fresh:
                self.token = fresh
        return self.token

    def open_placement_surface(self, cancel: Optional[threading.Event] = None) -> None:
        """Wait up to surface_wait_s for a placement token."""
        deadline = time.monotonic() + self.surface_wait_s
        while not self._current_token():
            if cancel is not None and cancel.is_set():
                raise ResourceNotReadyError("cancelled while waiting for a placement token")
            if time.monotonic() >= deadline:
                raise ResourceNotReadyError(
                    f"no placement token after {self.surface_wait_s:.0f}s "
                    f"(set {TOKEN_ENV_VAR} or pass a token)"
                )
            if cancel is not None:
                cancel.wait(self.surface_poll_s)
            else:
                time.sleep(self.surface_poll_s)

    def fetch_chunk(self, chunk_x: int, chunk_y: int) -> Optional[U8Image]:
        url = f"{self.tiles_url}/{chunk_x}/{chunk_y}.png"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientNetworkError(f"chunk {chunk_x},{chunk_y}: {exc}") from exc
        if resp.status_code == 404:
            if self.debug:
                debug_log(f"chunk {chunk_x},{chunk_y} not found (empty)")
            return None
        if not resp.ok:
            raise TransientNetworkError(
                f"chunk {chunk_x},{chunk_y}: HTTP {resp.status_code}"
            )
        try:
            return decode_png_rgba(resp.content)
        except OSError as exc:
            raise TransientNetworkError(
                f"chunk {chunk_x},{chunk_y}: undecodable image ({exc})"
            ) from exc

    def submit_placement(self, batch: PlacementBatch) -> PlacementResponse:
        chunk_x, chunk_y = batch.chunk
        url = f"{self.api_base}/s0/pixel/{chunk_x}/{chunk_y}"
        body = {"colors": batch.colors, "coords": batch.coords, "t": self._current_token()}
        try:
            resp = self.session.post(url, json=body, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientNetworkError(f"placement in {chunk_x},{chunk_y}: {exc}") from exc
        return PlacementResponse(status=resp.status_code, body=resp.text)

    def query_user_state(self) -> UserState:
        url = f"{self.api_base}/me"
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise TransientNetworkError(f"user state: {exc}") from exc
        if not resp.ok:
            raise TransientNetworkError(f"user state: HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise TransientNetworkError(f"user state: bad JSON ({exc})") from exc
        return parse_user_state(data)


__all__ = ["CanvasClient", "HttpCanvasClient", "parse_user_state"]
