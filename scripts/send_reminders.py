import argparse
import asyncio
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from slotbook.config import settings  # noqa: E402
from slotbook.container import BookingServices, from_settings  # noqa: E402
from slotbook.core.logging_config import setup_logging  # noqa: E402
from slotbook.db import create_all  # noqa: E402


async def run_once(services: BookingServices) -> dict:
    report = await services.send_reminders.execute()
    return report.as_dict()


async def run(services: BookingServices, once: bool, poll_seconds: float) -> int:
    if services.engine is not None and bool(settings.DB_AUTO_CREATE_ALL):
        await create_all(services.engine)
    try:
        while True:
            print(json.dumps(await run_once(services)), flush=True)
            if once:
                break
            await asyncio.sleep(max(1.0, float(poll_seconds)))
    finally:
        if services.engine is not None:
            await services.engine.dispose()
    return 0


def main() -> int:
    parser = argparse.ArgumentParser(description="Slotbook booking reminder dispatcher")
    parser.add_argument("--lookahead-hours", type=int, default=None, help="Pending window scanned per run")
    parser.add_argument("--poll-seconds", type=float, default=900.0, help="Delay between runs in loop mode")
    parser.add_argument("--loop", action="store_true", help="Keep running instead of a single pass")
    args = parser.parse_args()

    setup_logging()
    if args.lookahead_hours is not None:
        settings.REMINDER_LOOKAHEAD_HOURS = max(1, args.lookahead_hours)
    services = from_settings(settings)
    return asyncio.run(run(services, once=not args.loop, poll_seconds=args.poll_seconds))


if __name__ == "__main__":
    raise SystemExit(main())
