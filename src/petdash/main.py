from __future__ import annotations

import argparse
import json
import logging
import sys

from petdash.application.container import build_container
from petdash.config import get_app_paths, load_settings
from petdash.jobs import run_campaign_tick, run_daily_report
from petdash.logging_config import setup_logging

JOBS = {
    "campaign-tick": run_campaign_tick,
    "daily-report": run_daily_report,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="petdash", description="Run a scheduled dashboard job.")
    parser.add_argument("job", choices=sorted(JOBS))
    args = parser.parse_args(argv)

    paths = get_app_paths()
    setup_logging(paths.logs_dir, level=logging.INFO)

    container = build_container(paths.db_path, load_settings())
    status, payload = JOBS[args.job](container)
    print(json.dumps(payload, ensure_ascii=False, default=str))
    return 0 if status == 200 else 1


if __name__ == "__main__":
    sys.exit(main())
