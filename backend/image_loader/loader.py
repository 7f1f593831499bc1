"""
Stateful Image Loader

Reactive wrapper around the preloader for UI consumption.

State machine:
    idle -> loading -> loaded | failed

Events (url_changed, enabled_changed, retry_requested,
force_reload_requested) each start a fresh run. Every run carries a
generation number; results from an older generation are discarded, so
the observable state only ever reflects the most recently requested load.

All methods must be called from the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable, List, Mapping, Optional

from .config import MODEL_IMAGE_TIMEOUT_MS
from .preloader import ImageLoadError, ImageLoadOptions, LoadedImage, preload_image
from .url_utils import add_cache_buster

logger = logging.getLogger(__name__)

PreloadFunc = Callable[[str, ImageLoadOptions], Awaitable[LoadedImage]]
Listener = Callable[["LoaderState"], None]


class LoaderStatus(str, Enum):
    """加载器状态"""
    IDLE = "idle"
    LOADING = "loading"
    LOADED = "loaded"
    FAILED = "failed"


class LoaderEvent(str, Enum):
    """加载器事件"""
    URL_CHANGED = "url_changed"
    ENABLED_CHANGED = "enabled_changed"
    RETRY_REQUESTED = "retry_requested"
    FORCE_RELOAD_REQUESTED = "force_reload_requested"


@dataclass(frozen=True)
class LoaderState:
    """
    Snapshot exposed to the presentation layer.

    resolved_source and error are never both set; while loading both are empty.
    """
    resolved_source: str = ""
    loading: bool = False
    error: Optional[str] = None

    @property
    def status(self) -> LoaderStatus:
        if self.loading:
            return LoaderStatus.LOADING
        if self.error is not None:
            return LoaderStatus.FAILED
        if self.resolved_source:
            return LoaderStatus.LOADED
        return LoaderStatus.IDLE


IDLE_STATE = LoaderState()
LOADING_STATE = LoaderState(loading=True)


class ImageLoader:
    """
    Drives one image slot through the load state machine.

    Usage:
        loader = ImageLoader("https://cdn.example.com/models/ava.jpg")
        loader.subscribe(render)
        loader.start()
        ...
        loader.retry()          # fresh run, fresh retry budget
        loader.force_reload()   # same, with cache busting forced on
    """

    def __init__(
        self,
        url: str = "",
        options: Optional[ImageLoadOptions] = None,
        enabled: bool = True,
        preload: Optional[PreloadFunc] = None,
    ):
        self._url = url
        self._options = options or ImageLoadOptions()
        self._enabled = enabled
        self._preload = preload or preload_image

        self._state = IDLE_STATE
        self._load_attempt = 0
        self._generation = 0
        self._task: Optional[asyncio.Task] = None
        self._listeners: List[Listener] = []

    # ============================================
    # Observable state
    # ============================================

    @property
    def state(self) -> LoaderState:
        return self._state

    @property
    def url(self) -> str:
        return self._url

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def options(self) -> ImageLoadOptions:
        return self._options

    @property
    def load_attempt(self) -> int:
        return self._load_attempt

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """
        Register a state listener.

        Returns:
            A callable that removes the listener.
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _set_state(self, state: LoaderState) -> None:
        if state == self._state:
            return
        self._state = state
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                logger.warning(f"[ImageLoader] Listener failed: {e}")

    # ============================================
    # Inputs
    # ============================================

    def start(self) -> None:
        """Run the initial load for the configured URL."""
        self.dispatch(LoaderEvent.URL_CHANGED)

    def set_url(self, url: str) -> None:
        if url == self._url:
            return
        self._url = url
        self.dispatch(LoaderEvent.URL_CHANGED)

    def set_enabled(self, enabled: bool) -> None:
        if enabled == self._enabled:
            return
        self._enabled = enabled
        self.dispatch(LoaderEvent.ENABLED_CHANGED)

    def retry(self) -> None:
        self.dispatch(LoaderEvent.RETRY_REQUESTED)

    def force_reload(self) -> None:
        self.dispatch(LoaderEvent.FORCE_RELOAD_REQUESTED)

    def dispatch(self, event: LoaderEvent) -> None:
        if event in (LoaderEvent.RETRY_REQUESTED, LoaderEvent.FORCE_RELOAD_REQUESTED):
            self._load_attempt += 1
        self._run(force_cache_bust=event == LoaderEvent.FORCE_RELOAD_REQUESTED)

    # ============================================
    # Runs
    # ============================================

    def _run(self, force_cache_bust: bool) -> None:
        self._generation += 1
        generation = self._generation
        self._cancel_inflight()

        if not self._url or not self._enabled:
            self._set_state(IDLE_STATE)
            return

        options = self._options.with_overrides(cache_bust=True) if force_cache_bust else self._options
        self._set_state(LOADING_STATE)
        self._task = asyncio.get_running_loop().create_task(
            self._load(generation, self._url, options)
        )

    def _cancel_inflight(self) -> None:
        if self._task is not None and not self._task.done():
            self._task.cancel()
        self._task = None

    def _is_current(self, generation: int) -> bool:
        return generation == self._generation

    async def _load(self, generation: int, url: str, options: ImageLoadOptions) -> None:
        try:
            image = await self._preload(url, options)
        except ImageLoadError as e:
            self._settle_failure(generation, url, str(e))
            return
        except Exception as e:
            # Preload hooks other than the default may raise anything
            self._settle_failure(generation, url, str(e) or "Failed to load image")
            return

        if not self._is_current(generation):
            logger.debug(f"[ImageLoader] Discarding stale result for {url[:60]}")
            return

        self._set_state(LoaderState(resolved_source=image.url))

    def _settle_failure(self, generation: int, url: str, message: str) -> None:
        if not self._is_current(generation):
            logger.debug(f"[ImageLoader] Discarding stale failure for {url[:60]}")
            return
        logger.error(f"[ImageLoader] Image loading failed: {message}")
        self._set_state(LoaderState(error=message))

    async def settled(self) -> LoaderState:
        """Wait for the current run (if any) and return the resulting state."""
        while self._task is not None and not self._task.done():
            task = self._task
            try:
                await asyncio.shield(task)
            except asyncio.CancelledError:
                if not task.cancelled():
                    raise
        return self._state

    async def close(self) -> None:
        self._generation += 1
        task = self._task
        self._cancel_inflight()
        if task is not None:
            try:
                await task
            except asyncio.CancelledError:
                pass


class ModelImageLoader(ImageLoader):
    """
    Loader for catalog model records.

    Reads thumbnail_url and cache_buster from the record, uses a longer
    timeout, and falls back to the record's own busted thumbnail while
    nothing has resolved yet.
    """

    def __init__(self, model: Mapping[str, Any], preload: Optional[PreloadFunc] = None):
        self._thumbnail_url = model.get("thumbnail_url") or ""
        self._cache_buster = model.get("cache_buster")
        super().__init__(
            url=self._thumbnail_url,
            options=ImageLoadOptions(cache_bust=True, retry_count=3, timeout_ms=MODEL_IMAGE_TIMEOUT_MS),
            enabled=bool(self._thumbnail_url),
            preload=preload,
        )

    @property
    def image_error(self) -> bool:
        return self.state.error is not None

    @property
    def source(self) -> str:
        if self.state.resolved_source:
            return self.state.resolved_source
        if self._thumbnail_url and not self.image_error:
            return add_cache_buster(self._thumbnail_url, self._cache_buster)
        return ""
