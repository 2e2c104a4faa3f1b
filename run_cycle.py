import os
import sys
import time
from dotenv import load_dotenv

# Load environment variables from .env
load_dotenv()

# Ensure SQLAlchemy uses the supported dialect name: convert `postgres://` to `postgresql://`
_pg = os.environ.get("POSTGRES_URL")
if _pg and _pg.startswith("postgres://"):
    os.environ["POSTGRES_URL"] = "postgresql://" + _pg[len("postgres://"):]

USAGE = "usage: python run_cycle.py [daily | full | import <dataset-id> | cleanup]"


def print_run(run):
    print(f"Run {run.id}: {run.status.value}, {len(run.per_zone_results)} zones")
    for r in run.per_zone_results:
        if r.error:
            print(f"  {r.zone}: ERROR {r.error}")
        else:
            print(f"  {r.zone}: new {r.new_count} | updated {r.updated_count} | removed {r.deactivated_count}")


def wait_for_loop(pipeline):
    """Keep the process alive while the continuation loop has work pending."""
    pipeline.scheduler.start()
    try:
        while pipeline.loop.active:
            time.sleep(5)
    except KeyboardInterrupt:
        pipeline.loop.stop()
    finally:
        pipeline.scheduler.shutdown(wait=False)
    print(f"Loop finished: {pipeline.loop.snapshot()}")


if __name__ == "__main__":
    from listing_pipeline.db import Base, engine
    from listing_pipeline.pipeline import get_pipeline

    args = sys.argv[1:] or ["daily"]
    Base.metadata.create_all(bind=engine)
    pipeline = get_pipeline()

    if args[0] == "cleanup":
        print(pipeline.cleanup())
        raise SystemExit(0)
    if not pipeline.provider_configured:
        raise SystemExit("APIFY_TOKEN not set")

    if args[0] == "daily":
        print_run(pipeline.run_maintenance())
    elif args[0] == "full":
        pipeline.loop.start()
        wait_for_loop(pipeline)
        for run in reversed(pipeline.run_log.list()):
            print_run(run)
    elif args[0] == "import" and len(args) == 2:
        print(pipeline.import_dataset(args[1]).model_dump_json(indent=2))
    else:
        raise SystemExit(USAGE)
