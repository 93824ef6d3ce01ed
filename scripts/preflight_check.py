#!/usr/bin/env python3
import sys
import os

print("Running preflight import check...")
try:
    # Dummy env vars so settings load without a .env file
    os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

    import app.main
    print("Import app.main: OK")

    import app.queue.jobs
    print("Import app.queue.jobs: OK")

    from app.core.steps import EntityType, steps_for
    for et in EntityType:
        print(f"  {et.value}: {' -> '.join(s.value for s in steps_for(et))}")

    print("Preflight check passed.")
    sys.exit(0)
except Exception as e:
    print(f"Preflight check FAILED: {e}")
    import traceback
    traceback.print_exc()
    sys.exit(1)
