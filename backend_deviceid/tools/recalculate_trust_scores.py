"""
Recalculate and persist trust scores for one device or every registered device.

How to run:
    From project root (with .env configured or DEVICEID_DB_PATH set):
        python -m backend_deviceid.tools.recalculate_trust_scores
        python -m backend_deviceid.tools.recalculate_trust_scores --device-id 42
        python -m backend_deviceid.tools.recalculate_trust_scores --workers 8 --init-db

Each device is isolated: a failure is logged and counted, never aborts the run.
Exit code is 1 when any device failed.
"""

from __future__ import annotations

import argparse
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Sequence

from backend_deviceid.config.settings import get_settings
from backend_deviceid.database.connection import init_db
from backend_deviceid.database.repository import DeviceRepository
from backend_deviceid.deviceid_logging import device_context, get_logger
from backend_deviceid.verification.handler import VerificationHandler

logger = get_logger(__name__)

DEFAULT_WORKERS = 4


def _recalculate_safe(handler: VerificationHandler, device_id: int) -> bool:
    with device_context(device_id):
        try:
            handler.calculate_trust_score(device_id)
            return True
        except Exception as e:
            logger.warning("recalculate_device_failed", error=str(e), exc_info=True)
            return False


def recalculate(
    handler: VerificationHandler,
    device_ids: Sequence[int],
    workers: int = DEFAULT_WORKERS,
) -> tuple[int, int]:
    """Recalculate scores for device_ids. Returns (processed, errors)."""
    processed = 0
    errors = 0
    if not device_ids:
        return processed, errors
    with ThreadPoolExecutor(max_workers=max(1, workers)) as executor:
        futures = {executor.submit(_recalculate_safe, handler, d): d for d in device_ids}
        for fut in as_completed(futures):
            if fut.result():
                processed += 1
            else:
                errors += 1
    return processed, errors


def main(argv: Sequence[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Recalculate device trust scores")
    parser.add_argument("--device-id", type=int, default=None, help="Only recalculate this device")
    parser.add_argument(
        "--workers",
        type=int,
        default=DEFAULT_WORKERS,
        help=f"Parallel recalculations (default: {DEFAULT_WORKERS})",
    )
    parser.add_argument("--init-db", action="store_true", help="Create tables before running")
    args = parser.parse_args(argv)

    if args.init_db:
        init_db()

    repository = DeviceRepository()
    handler = VerificationHandler(repository, settings=get_settings())
    device_ids = [args.device_id] if args.device_id is not None else repository.list_device_ids()

    start = time.monotonic()
    processed, errors = recalculate(handler, device_ids, workers=args.workers)
    logger.info(
        "recalculate_done",
        devices=len(device_ids),
        processed=processed,
        errors=errors,
        duration_sec=round(time.monotonic() - start, 2),
    )
    return 1 if errors else 0


if __name__ == "__main__":
    sys.exit(main())
