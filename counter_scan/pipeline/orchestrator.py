# pipeline/orchestrator.py
from __future__ import annotations

import asyncio
import inspect
import itertools
import logging
import threading
import time
from typing import Callable, Iterable

from counter_scan.config import ScanOptions
from .aggregator import StabilityAggregator
from .errors import RecognitionUnavailable, ScanContractError, TransientRecognitionError
from .frame_buffer import FrameBuffer
from .models import (
    CodeDecodeAdapter,
    CodePayload,
    Frame,
    RecognitionAdapter,
    RecognitionOptions,
    RecognitionSample,
    RecognizedText,
    RegionCrop,
    ResultKind,
    ScanRegion,
    ScanResult,
    ScanState,
    ScanStats,
)
from .numeric import NumericExtractor
from .regions import extract_region

log = logging.getLogger(__name__)

_session_ids = itertools.count(1)

CompletionCallback = Callable[[ScanResult], None]


class ScanSession:
    """
    One scan: its own frame buffer, polling task, stop flag and result.

    Must be created from inside a running event loop (the engine does this
    in start_scan). Ticks run strictly one after another on that loop;
    request_stop() may be called from any thread.
    """

    def __init__(
        self,
        regions: tuple[ScanRegion, ...],
        options: ScanOptions,
        recognizer: RecognitionAdapter,
        decoder: CodeDecodeAdapter | None = None,
        on_complete: CompletionCallback | None = None,
    ):
        self.id = next(_session_ids)
        self.regions = regions
        self.options = options
        self.buffer = FrameBuffer(options.max_frame_buffer)
        self.state = ScanState.IDLE

        self._recognizer = recognizer
        self._decoder = decoder
        self._extractor = NumericExtractor(*options.value_range)
        self._aggregate = StabilityAggregator(options.min_occurrences, options.value_range)
        self._on_complete = on_complete

        self._loop = asyncio.get_running_loop()
        self._result: asyncio.Future[ScanResult] = self._loop.create_future()
        self._stop_requested = threading.Event()
        self._wake = asyncio.Event()
        self._task: asyncio.Task | None = None

        self.ticks_run = 0
        self.recognition_calls = 0
        self.samples_last_tick = 0
        self.last_error: str | None = None

    # ---------- lifecycle ----------
    def start(self) -> None:
        if self.state is not ScanState.IDLE:
            raise ScanContractError(f"session {self.id} already started ({self.state.value})")
        self.state = ScanState.SCANNING
        log.info(f"session {self.id}: scanning {len(self.regions)} regions, buffer={self.options.max_frame_buffer}")
        self._task = self._loop.create_task(self._run(), name=f"counter-scan-{self.id}")

    def abort(self, reason: str) -> None:
        """Fail the session before it ever scans (engine never became ready)."""
        self._finish(ScanState.ERROR_ABORTED, ScanResult(ResultKind.ERROR, detail=reason))

    def request_stop(self) -> None:
        if self.done:
            return
        self._stop_requested.set()
        log.info(f"session {self.id}: stop requested")
        try:
            self._loop.call_soon_threadsafe(self._wake.set)
        except RuntimeError:
            # loop already closed; nothing left to wake
            pass

    @property
    def stop_requested(self) -> bool:
        return self._stop_requested.is_set()

    @property
    def done(self) -> bool:
        return self._result.done()

    async def wait(self) -> ScanResult:
        return await asyncio.shield(self._result)

    def stats(self) -> ScanStats:
        return ScanStats(
            state=self.state,
            buffer_occupancy=len(self.buffer),
            ticks_run=self.ticks_run,
            last_error=self.last_error,
            samples_last_tick=self.samples_last_tick,
            recognition_calls=self.recognition_calls,
        )

    def _finish(self, state: ScanState, result: ScanResult) -> None:
        if self._result.done():
            return
        self.state = state
        self._result.set_result(result)
        log.info(f"session {self.id}: {state.value} after {self.ticks_run} ticks")

        if self._on_complete is not None:
            try:
                self._on_complete(result)
            except Exception:
                log.exception(f"session {self.id}: completion callback failed")

    # ---------- loop ----------
    async def _run(self) -> None:
        started = time.monotonic()
        try:
            while True:
                if self.stop_requested:
                    self._finish(ScanState.CANCELLED, ScanResult(ResultKind.CANCELLED))
                    return

                if self._expired(started):
                    self._finish(
                        ScanState.NO_STABLE_READING,
                        ScanResult(ResultKind.NO_READING, detail="no value reached the occurrence threshold"),
                    )
                    return

                delay_ms = await self._tick()
                if self.done:
                    return

                if self.stop_requested:
                    self._finish(ScanState.CANCELLED, ScanResult(ResultKind.CANCELLED))
                    return

                await self._sleep(delay_ms)

        except asyncio.CancelledError:
            self._finish(ScanState.CANCELLED, ScanResult(ResultKind.CANCELLED, detail="task cancelled"))
            raise
        except Exception as e:
            log.exception(f"session {self.id}: scan loop crashed")
            self._finish(ScanState.ERROR_ABORTED, ScanResult(ResultKind.ERROR, detail=str(e)))

    def _expired(self, started: float) -> bool:
        limit = self.options.session_timeout_ms
        return limit is not None and (time.monotonic() - started) * 1000.0 >= limit

    async def _sleep(self, delay_ms: float) -> None:
        if delay_ms <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(self._wake.wait(), delay_ms / 1000.0)
        except asyncio.TimeoutError:
            pass

    async def _tick(self) -> float:
        """
        One pass. Returns the delay (ms) before the next one.

        Only _run calls this and it awaits each pass before sleeping, so
        passes never overlap.
        """
        self.ticks_run += 1
        self.samples_last_tick = 0

        frames = self.buffer.snapshot()
        if not frames:
            return self.options.tick_interval_ms

        # 1) cheap code decode on the newest frame
        code = await self._try_decode(frames[-1])
        if self.stop_requested:
            return 0
        if code is not None:
            self._finish(ScanState.QR_FOUND, ScanResult(ResultKind.CODE, code=code))
            return 0

        # 2) regions x buffered frames through the recognizer
        try:
            samples = await self._sample(frames)
        except TransientRecognitionError as e:
            self.last_error = e.message
            log.warning(f"session {self.id}: {e.message}; backing off {self.options.error_backoff_ms:.0f} ms")
            return self.options.error_backoff_ms

        if samples is None:
            return 0  # stopped mid-tick, results discarded

        # 3) clean + vote
        self.samples_last_tick = len(samples)
        candidates = self._extractor.extract_all(samples)
        reading = self._aggregate(candidates)

        if reading is None:
            log.debug(
                f"session {self.id} tick {self.ticks_run}: {len(samples)} samples, "
                f"{len(candidates)} candidates, no stable reading yet"
            )
            return self.options.tick_interval_ms

        log.info(
            f"session {self.id}: stable reading {reading.value} "
            f"(conf={reading.confidence:.1f}, occurrences={reading.occurrences})"
        )
        self._finish(ScanState.STABLE_READING_FOUND, ScanResult(ResultKind.READING, reading=reading))
        return 0

    async def _try_decode(self, frame: Frame) -> CodePayload | None:
        if self._decoder is None:
            return None
        try:
            if inspect.iscoroutinefunction(self._decoder.decode):
                result = await self._decoder.decode(frame)
            else:
                # blocking decoders run in a worker thread
                result = await asyncio.to_thread(self._decoder.decode, frame)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            log.warning(f"session {self.id}: code decode failed on frame {frame.seq}: {e}")
            return None
        return result

    async def _sample(self, frames: tuple[Frame, ...]) -> list[RecognitionSample] | None:
        samples: list[RecognitionSample] = []
        for region in self.regions:
            for frame in frames:
                if self.stop_requested:
                    return None

                crop = extract_region(frame, region)
                if crop.empty:
                    continue  # invalid geometry for this frame

                rec = await self._recognize(crop)
                samples.append(
                    RecognitionSample(
                        region_name=region.name,
                        frame_seq=frame.seq,
                        raw_text=rec.text,
                        confidence=rec.confidence,
                        region_weight=region.trust_weight,
                    )
                )
                log.debug(f"{region.name}/f{frame.seq}: {rec.text!r} ({rec.confidence:.1f})")

        if self.stop_requested:
            return None
        return samples

    async def _recognize(self, crop: RegionCrop) -> RecognizedText:
        self.recognition_calls += 1
        timeout_ms = self.options.recognize_timeout_ms
        try:
            call = self._recognizer.recognize(crop.image)
            if timeout_ms is None:
                return await call
            return await asyncio.wait_for(call, timeout_ms / 1000.0)
        except asyncio.TimeoutError:
            raise TransientRecognitionError(
                crop.region_name, crop.frame_seq, f"timed out after {timeout_ms:.0f} ms"
            ) from None
        except Exception as e:
            raise TransientRecognitionError(crop.region_name, crop.frame_seq, str(e) or type(e).__name__) from e


class CounterScanEngine:
    """
    Entry point expected by hosts:
    start_scan -> add_frame (from any thread) -> wait / stop_scan
    """

    def __init__(
        self,
        recognizer: RecognitionAdapter,
        decoder: CodeDecodeAdapter | None = None,
        recognition_options: RecognitionOptions | None = None,
    ):
        self.recognizer = recognizer
        self.decoder = decoder
        self.recognition_options = recognition_options or RecognitionOptions()
        self._ready = False
        self._sessions: dict[int, ScanSession] = {}
        self._lock = threading.Lock()

    async def _ensure_ready(self) -> None:
        if self._ready:
            return
        try:
            await self.recognizer.configure(self.recognition_options)
        except Exception as e:
            raise RecognitionUnavailable(str(e) or type(e).__name__) from e
        self._ready = True

    async def start_scan(
        self,
        regions: Iterable[ScanRegion],
        options: ScanOptions | None = None,
        on_complete: CompletionCallback | None = None,
    ) -> ScanSession:
        regions = tuple(regions)
        if not regions:
            raise ScanContractError("start_scan needs at least one region")
        for r in regions:
            if not isinstance(r, ScanRegion):
                raise ScanContractError(f"expected ScanRegion, got {type(r).__name__}")
        names = [r.name for r in regions]
        if len(set(names)) != len(names):
            raise ScanContractError(f"region names must be unique: {names}")

        session = ScanSession(regions, options or ScanOptions(), self.recognizer, self.decoder, on_complete)

        try:
            await self._ensure_ready()
        except RecognitionUnavailable as e:
            log.error(f"session {session.id}: {e.message}")
            session.abort(e.message)
            e.session = session
            raise

        with self._lock:
            self._sessions[session.id] = session
        session.start()
        return session

    def _active(self) -> list[ScanSession]:
        with self._lock:
            for sid in [sid for sid, s in self._sessions.items() if s.done]:
                del self._sessions[sid]
            return list(self._sessions.values())

    def add_frame(self, frame: Frame) -> int:
        """Push a frame to every running session. Returns how many accepted it."""
        accepted = 0
        for session in self._active():
            if session.buffer.push(frame):
                accepted += 1
        return accepted

    def stop_scan(self, handle: ScanSession) -> None:
        handle.request_stop()

    def get_stats(self, handle: ScanSession) -> ScanStats:
        return handle.stats()

    async def close(self) -> None:
        """Stop every session, wait for them, release the recognizer."""
        sessions = self._active()
        for s in sessions:
            s.request_stop()
        for s in sessions:
            await s.wait()

        close = getattr(self.recognizer, "close", None)
        if close is not None:
            result = close()
            if inspect.isawaitable(result):
                await result
        self._ready = False
        log.info("scan engine closed")
