"""
Confidential records demo CLI.

Usage:
    records-demo

Or run directly:
    python -m confidential_records.demo

Uses PostgreSQL when DATABASE_URL is set (environment or .env file),
in-memory storage otherwise.
"""

from __future__ import annotations

import asyncio
import sys
import time

from .config import Settings
from .errors import ComparisonUnavailableError, RecordStoreError, UnauthorizedError, ValidationError
from .events import Decrypted, EventRecorder
from .logger import configure_logging
from .service import RecordService

OWNER = "0xA11CE"
OUTSIDER = "0xB0B"


async def run_demo() -> None:
    """Walk a record through its whole encrypted-attribute lifecycle."""
    print("=== Confidential Records Demo ===\n")

    settings = Settings.from_env()
    configure_logging(settings.log_level, settings.log_file)

    service = await RecordService.new(settings)
    recorder = EventRecorder()
    service.subscribe(recorder)

    try:
        start = time.perf_counter()
        record_id = await service.create_record(
            OWNER, name="Acme", category="Tools", contact="a@x", rating=7, visibility=False
        )
        duration = (time.perf_counter() - start) * 1000
        print(f"[CREATE] record {record_id} owned by {OWNER} in {duration:.3f}ms")

        view = await service.get_record(record_id)
        print(f"[READ]   {view.name} / {view.category} / {view.contact}, rating shown as {view.rating}")

        request = await service.request_decryption(OWNER, record_id)
        print(f"[DECRYPT] request {request.request_id} accepted, state={request.state}")
        await service.drain()
        for event in recorder.of_kind(Decrypted):
            print(f"[DECRYPT] owner {event.owner} received rating {event.plaintext}")

        try:
            await service.request_decryption(OUTSIDER, record_id)
        except UnauthorizedError as e:
            print(f"[DECRYPT] outsider refused: {e}")

        try:
            await service.update_rating(OWNER, record_id, 11)
        except ValidationError as e:
            print(f"[UPDATE] out-of-range rating refused: {e}")

        await service.update_visibility(OWNER, record_id, True)
        print(f"[VISIBILITY] owner sees {await service.get_visibility(OWNER, record_id)}, "
              f"outsider sees {await service.get_visibility(OUTSIDER, record_id)}")

        other_id = await service.create_record(
            OUTSIDER, name="Globex", category="Parts", contact="g@x", rating=4
        )
        try:
            await service.compare(OWNER, record_id, other_id)
        except ComparisonUnavailableError as e:
            print(f"[COMPARE] {e}")

        print(f"\nRecord count: {await service.count()}")
        print(f"Notifications: {', '.join(e.kind for e in recorder.events)}")
    finally:
        await service.close()


def main() -> None:
    try:
        asyncio.run(run_demo())
    except RecordStoreError as e:
        print(f"ERROR: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
