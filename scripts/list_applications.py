"""
Print one line per stored application: id, entity type, status and progress.
Read-only; safe to run against any environment. Filter with --status.
"""
import argparse
import os
import sys

os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")

from app.core.state_machine import step_overview
from app.store.application_repo import iter_application_ids, load_application


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--status", help="only show applications in this status")
    args = parser.parse_args(argv)

    shown = 0
    for application_id in iter_application_ids():
        app = load_application(application_id)
        if args.status and app.status != args.status:
            continue
        progress = step_overview(app)["progress"]["percentage"]
        print(f"{app.id}\t{app.entityType}\t{app.status}\t{progress}%\t{app.updatedAt or '-'}")
        shown += 1
    print(f"OK: {shown} application(s)", file=sys.stderr)
    return 0


if __name__ == "__main__":
    sys.exit(main())
