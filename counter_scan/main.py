# main.py
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from counter_scan.config import AppConfig, ScanOptions
from counter_scan.pipeline.easyocr_adapter import EasyOcrRecognizer
from counter_scan.pipeline.errors import RecognitionUnavailable, ScanContractError
from counter_scan.pipeline.models import RecognitionOptions, ResultKind, ScanRegion, ScanResult
from counter_scan.pipeline.orchestrator import CounterScanEngine, ScanSession
from counter_scan.pipeline.qr_decoder import OpenCvQrDecoder
from counter_scan.pipeline.regions import DEFAULT_PRESET, REGION_PRESETS, get_region_preset, load_regions_file
from counter_scan.pipeline.utils import describe_result, setup_logging
from counter_scan.pipeline.video_io import FrameFeeder, iter_frames

log = logging.getLogger(__name__)

FEEDER_POLL_S = 0.1


def resolve_regions(cfg: AppConfig) -> tuple[ScanRegion, ...]:
    if cfg.regions_file is not None:
        return load_regions_file(cfg.regions_file)
    return get_region_preset(cfg.region_preset)


async def _watch_feeder(engine: CounterScanEngine, session: ScanSession, feeder: FrameFeeder) -> None:
    """Stop the scan if the capture thread dies on an error."""
    while feeder.is_alive():
        await asyncio.sleep(FEEDER_POLL_S)
    if feeder.error is not None:
        log.error(f"frame source failed: {feeder.error}")
        engine.stop_scan(session)


async def run_async(cfg: AppConfig) -> ScanResult:
    regions = resolve_regions(cfg)

    # open the source before loading the OCR model so a bad path fails fast
    source = cfg.camera_index if cfg.camera_index is not None else cfg.source
    frames = iter_frames(source, stride=cfg.frame_stride, max_frames=cfg.max_frames)

    engine = CounterScanEngine(
        recognizer=EasyOcrRecognizer(),
        decoder=OpenCvQrDecoder(),
        recognition_options=RecognitionOptions(
            languages=cfg.ocr_langs,
            gpu=cfg.ocr_gpu,
            engine_mode=cfg.ocr_decoder,
        ),
    )

    session = await engine.start_scan(regions, cfg.scan)

    feeder = FrameFeeder(engine, frames, fps=cfg.feed_fps)
    feeder.start()
    watcher = asyncio.ensure_future(_watch_feeder(engine, session, feeder))

    try:
        result = await session.wait()
    finally:
        watcher.cancel()
        feeder.stop()
        await engine.close()

    stats = engine.get_stats(session)
    log.info(
        f"ticks={stats.ticks_run} recognition_calls={stats.recognition_calls} "
        f"frames_pushed={feeder.pushed} last_error={stats.last_error}"
    )
    if feeder.error is not None and result.kind == ResultKind.CANCELLED:
        raise RuntimeError(f"frame source failed: {feeder.error}") from feeder.error
    return result


def run(cfg: AppConfig) -> int:
    setup_logging(cfg.logging_level)

    try:
        result = asyncio.run(run_async(cfg))
    except RecognitionUnavailable as e:
        print(f"Recognition engine unavailable: {e.message}")
        return 2
    except (ScanContractError, RuntimeError, OSError) as e:
        print(f"Scan could not run: {e}")
        return 2

    for line in describe_result(result):
        print(line)

    return 0 if result.kind in (ResultKind.CODE, ResultKind.READING) else 1


def parse_args(argv: list[str] | None = None) -> AppConfig:
    p = argparse.ArgumentParser(description="Read a counter display (or its QR code) from video.")
    p.add_argument("--source", required=True, help="Video file path or camera index (e.g. 0)")
    p.add_argument("--preset", default=DEFAULT_PRESET, choices=sorted(REGION_PRESETS), help="Region preset")
    p.add_argument("--regions", default=None, help="JSON file with custom regions (overrides --preset)")
    p.add_argument("--stride", type=int, default=1, help="Process every Nth frame")
    p.add_argument("--max-frames", type=int, default=0, help="0 means no limit")
    p.add_argument("--fps", type=float, default=0.0, help="Pace frame feeding; 0 means as fast as decoded")
    p.add_argument("--timeout", type=float, default=20.0, help="Give up after this many seconds (0 = never)")
    p.add_argument("--buffer", type=int, default=3, help="Frames kept for voting")
    p.add_argument("--min-occurrences", type=int, default=2, help="Votes needed for a stable reading")
    p.add_argument("--decoder", default="greedy", choices=["greedy", "beamsearch"], help="EasyOCR decoder")
    p.add_argument("--gpu", action="store_true", help="Run EasyOCR on the GPU")
    p.add_argument("--log-level", default="INFO", help="Logging level")
    args = p.parse_args(argv)

    scan = ScanOptions(
        max_frame_buffer=args.buffer,
        min_occurrences=args.min_occurrences,
        session_timeout_ms=(None if args.timeout <= 0 else args.timeout * 1000.0),
    )

    cfg = AppConfig(
        source=args.source,
        region_preset=args.preset,
        regions_file=(Path(args.regions) if args.regions else None),
        frame_stride=max(1, args.stride),
        max_frames=(None if args.max_frames == 0 else args.max_frames),
        feed_fps=(None if args.fps <= 0 else args.fps),
        scan=scan,
        logging_level=args.log_level,
        ocr_gpu=args.gpu,
        ocr_decoder=args.decoder,
    )
    return cfg


def main() -> None:
    try:
        cfg = parse_args()
    except ScanContractError as e:
        print(f"Invalid options: {e.message}")
        sys.exit(2)
    sys.exit(run(cfg))


if __name__ == "__main__":
    main()
