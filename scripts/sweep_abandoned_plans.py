"""
Delete provisional meal plans whose generation never finished.

A plan is written when generation starts; if the browser never polls the
run to completion the plan stays 'processing' forever. Run this on a
schedule.

Run with: python -m scripts.sweep_abandoned_plans [hours]
"""

import asyncio
import sys
from datetime import timedelta

from mealbyme.db.database import get_sessionmaker
from mealbyme.services.generation import get_sweep_cutoff
from mealbyme.services.materializer import sweep_abandoned_plans


async def main(older_than: timedelta) -> int:
    print(f"🔄 Sweeping provisional meal plans older than {older_than}...")
    async with get_sessionmaker()() as db:
        return await sweep_abandoned_plans(db, older_than)


if __name__ == "__main__":
    cutoff = timedelta(hours=float(sys.argv[1])) if len(sys.argv) > 1 else get_sweep_cutoff()
    asyncio.run(main(cutoff))
