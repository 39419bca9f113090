"""
Scan orchestration: lock, walk, reconcile, generate, publish.
"""

from __future__ import annotations

import logging
import os
import threading
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, replace
from typing import Callable, Iterator, Optional

import psutil

from config import ConfigProvider, GallerySettings
from dashboard.broadcaster import ProgressBroadcaster, ProgressObserver
from discovery import MediaFile, MediaWalker, count_by_kind
from storage import FileLocationCache, MediaDateCache, ScanState, ScanStateStore
from thumbnails import CacheReconciler, ThumbnailCodec
from utils import ResourceMonitor

from .lock import ScanLock, ScanLockError

CodecFactory = Callable[[GallerySettings, logging.Logger], ThumbnailCodec]

_EXISTING = "existing"
_GENERATED = "generated"
_FAILED = "failed"


class ScanFailedError(RuntimeError):
    """Raised when a scan aborts on an unexpected error."""


@dataclass(frozen=True)
class ScanStartResult:
    """Outcome of a scan request; accepted=False means a scan is already running."""

    accepted: bool
    state: ScanState


class ScanOrchestrator:
    """Run one scan at a time and publish its progress."""

    def __init__(
        self,
        config_provider: ConfigProvider,
        broadcaster: Optional[ProgressBroadcaster] = None,
        codec_factory: Optional[CodecFactory] = None,
        logger: Optional[logging.Logger] = None,
        performance_logger: Optional[logging.Logger] = None,
    ) -> None:
        self.config_provider = config_provider
        self.logger = logger or logging.getLogger("gallery.scan")
        self.performance_logger = performance_logger or logging.getLogger("gallery.performance")
        self.broadcaster = broadcaster or ProgressBroadcaster(logger=self.logger)
        if self.broadcaster.state_source is None:
            self.broadcaster.state_source = self._latest_state_dict
        self.codec_factory = codec_factory or ThumbnailCodec.from_settings
        self._start_mutex = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._current: Optional[ScanState] = None
        self._active = False

    def start_scan(self, wait: bool = False) -> ScanStartResult:
        """Start a scan, or report the running one.

        Raises ScanConfigurationError before touching the lock when roots or the
        thumbnail directory are missing. With wait=True the whole pipeline runs
        on the calling thread and ScanFailedError is raised on failure.
        """
        settings = self.config_provider.current()
        settings.validate()
        with self._start_mutex:
            lock = self._lock_for(settings)
            if not lock.try_acquire():
                state = self.get_scan_state()
                self.logger.info("Scan request rejected; scan in progress (%s/%s)", state.scanned, state.total)
                return ScanStartResult(accepted=False, state=state)
            self._active = True
            self.logger.info("Scan started. Roots=%s", ", ".join(settings.media_roots))
            state = ScanState()
            try:
                files = MediaWalker.from_settings(settings, self.logger).walk(settings.media_roots)
                images, videos = count_by_kind(files)
                state = ScanState.started(len(files), images, videos)
                self._publish(settings, state)
            except Exception as exc:
                self._fail(settings, lock, state.started_at, exc)

        if wait:
            return ScanStartResult(accepted=True, state=self._run_pipeline(settings, lock, files, state))
        self._thread = threading.Thread(
            target=self._run_in_background,
            args=(settings, lock, files, state),
            name="gallery-scan",
            daemon=True,
        )
        self._thread.start()
        return ScanStartResult(accepted=True, state=state)

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Join the background scan thread; True when no scan thread is alive."""
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        return not thread.is_alive()

    @property
    def is_running(self) -> bool:
        """True while this instance holds the lock for a scan."""
        return self._active

    def get_scan_state(self) -> ScanState:
        # Another process may own the running scan; the persisted document is authoritative then.
        if self.is_running and self._current is not None:
            return self._current
        try:
            return ScanStateStore(self.config_provider.current().scan_state_path).read()
        except OSError as exc:
            self.logger.warning("Cannot read scan state: %s", exc)
            return ScanState()

    def subscribe(self, client: ProgressObserver) -> str:
        return self.broadcaster.register(client)

    def unsubscribe(self, client_id: str) -> None:
        self.broadcaster.unregister(client_id)

    def clear_lock(self, force: bool = False) -> bool:
        """Remove a lock left by a dead scan; force skips the liveness check."""
        settings = self.config_provider.current()
        lock = self._lock_for(settings)
        if not lock.is_held():
            return False
        if not force and not lock.is_stale():
            info = lock.info()
            raise ScanLockError(
                f"Scan lock is held by a live process (pid={info.pid if info else '?'}). "
                "Use force to remove it anyway."
            )
        removed = lock.force_release()
        store = ScanStateStore(settings.scan_state_path)
        persisted = store.read()
        if removed and persisted.is_scanning:
            self._publish(settings, ScanState.failed(persisted.started_at))
        self.logger.warning("Scan lock cleared: %s", settings.lock_path)
        return removed

    def _run_in_background(
        self, settings: GallerySettings, lock: ScanLock, files: list[MediaFile], state: ScanState
    ) -> None:
        try:
            self._run_pipeline(settings, lock, files, state)
        except ScanFailedError:
            pass  # already logged and published by _fail

    def _run_pipeline(
        self, settings: GallerySettings, lock: ScanLock, files: list[MediaFile], state: ScanState
    ) -> ScanState:
        started = time.monotonic()
        try:
            try:
                final = self._execute(settings, files, state)
            except Exception as exc:
                self._fail(settings, lock, state.started_at, exc)
            self._publish(settings, final)
        finally:
            lock.release()
            self._active = False
        elapsed = time.monotonic() - started
        self.logger.info(
            "Scan complete. Total=%s Images=%s Videos=%s Deleted=%s Failed=%s",
            final.total,
            final.images_count,
            final.videos_count,
            final.deleted_thumbs,
            final.failed_thumbs,
        )
        self.performance_logger.info(
            "Scan pipeline finished in %.1fs for %s files (%.1f files/s)",
            elapsed,
            final.total,
            final.total / elapsed if elapsed > 0 else 0.0,
        )
        return final

    def _execute(self, settings: GallerySettings, files: list[MediaFile], state: ScanState) -> ScanState:
        location_cache = FileLocationCache(settings.location_cache_path, logger=self.logger)
        reconciler = CacheReconciler(
            settings.thumb_dir,
            temp_dir=settings.temp_dir,
            location_cache=location_cache,
            date_cache=MediaDateCache(settings.date_cache_path, logger=self.logger),
            logger=self.logger,
        )
        stats = reconciler.reconcile({media.file_id for media in files})
        try:
            location_cache.rebuild(files)
        except OSError as exc:
            self.logger.error("Cannot rebuild location cache: %s", exc)
        state = replace(state, deleted_thumbs=stats.orphan_thumbs)
        self._publish(settings, state)

        codec = self.codec_factory(settings, self.logger)
        settings.thumb_dir.mkdir(parents=True, exist_ok=True)
        return self._generate_missing(settings, codec, files, state).completed()

    def _generate_missing(
        self,
        settings: GallerySettings,
        codec: ThumbnailCodec,
        files: list[MediaFile],
        state: ScanState,
    ) -> ScanState:
        monitor = self._resource_monitor(settings)
        scanned = failed = 0
        for outcome in self._outcomes(codec, files, monitor, self._worker_count(settings)):
            scanned += 1
            if outcome == _FAILED:
                failed += 1
            if outcome != _EXISTING:
                state = state.advanced(scanned, failed)
                self._publish(settings, state)
        return state.advanced(scanned, failed)

    def _outcomes(
        self,
        codec: ThumbnailCodec,
        files: list[MediaFile],
        monitor: Optional[ResourceMonitor],
        workers: int,
    ) -> Iterator[str]:
        """Yield one outcome per file, in completion order."""
        if workers <= 1:
            for media in files:
                yield self._process(codec, media, monitor)
            return
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="gallery-thumb") as executor:
            futures = [executor.submit(self._process, codec, media, monitor) for media in files]
            for future in as_completed(futures):
                yield future.result()

    def _process(
        self, codec: ThumbnailCodec, media: MediaFile, monitor: Optional[ResourceMonitor]
    ) -> str:
        if codec.thumbnail_exists(media.file_id):
            return _EXISTING
        if monitor is not None:
            monitor.throttle()
        try:
            generated = codec.ensure_thumbnail(media, media.is_video)
        except Exception as exc:
            self.logger.error("Thumbnail generation failed for %s: %s", media.file_path, exc)
            return _FAILED
        if generated:
            self.logger.info("Thumbnail generated: %s", media.relative_path)
            return _GENERATED
        return _EXISTING

    def _publish(self, settings: GallerySettings, state: ScanState) -> None:
        self._current = state
        try:
            ScanStateStore(settings.scan_state_path).write(state)
        except OSError as exc:
            self.logger.error("Cannot persist scan state: %s", exc)
        self.broadcaster.broadcast(state.to_dict())

    def _fail(
        self,
        settings: GallerySettings,
        lock: ScanLock,
        started_at: Optional[str],
        exc: Exception,
    ) -> None:
        self.logger.exception("Scan failed: %s", exc)
        lock.release()
        self._active = False
        self._publish(settings, ScanState.failed(started_at))
        raise ScanFailedError("Scan failed") from exc

    def _latest_state_dict(self) -> Optional[dict]:
        if self.is_running and self._current is not None:
            return self._current.to_dict()
        try:
            return ScanStateStore(self.config_provider.current().scan_state_path).read_raw()
        except OSError:
            return None

    def _lock_for(self, settings: GallerySettings) -> ScanLock:
        return ScanLock(
            settings.lock_path,
            stale_after_seconds=settings.stale_lock_seconds,
            reclaim_dead_owner=settings.reclaim_dead_locks,
            logger=self.logger,
        )

    def _worker_count(self, settings: GallerySettings) -> int:
        if settings.workers > 0:
            return settings.workers
        return psutil.cpu_count(logical=False) or os.cpu_count() or 1

    def _resource_monitor(self, settings: GallerySettings) -> Optional[ResourceMonitor]:
        if settings.max_cpu_percent <= 0 and settings.max_ram_percent <= 0:
            return None
        return ResourceMonitor(
            max_cpu_percent=settings.max_cpu_percent,
            max_ram_percent=settings.max_ram_percent,
        )

