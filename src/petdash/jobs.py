from __future__ import annotations

import logging
from dataclasses import asdict
from datetime import datetime
from typing import Optional

from petdash.application.container import AppContainer

log = logging.getLogger("petdash.jobs")


def run_campaign_tick(container: AppContainer, now: Optional[datetime] = None) -> tuple[int, dict]:
    """Handler behind the scheduled-campaigns endpoint hit by the external job runner."""
    result = container.campaigns.dispatch_due(now)
    if not result.success:
        return 500, {"success": False, "error": result.error}
    report = result.data
    return 200, {
        "success": True,
        "dispatched": [
            {**asdict(d), "fire_time": d.fire_time.isoformat()} for d in report.dispatched
        ],
        "skipped": list(report.skipped),
    }


def run_daily_report(container: AppContainer, today: Optional[datetime] = None) -> tuple[int, dict]:
    result = container.reports.send_daily_report(today)
    if not result.success:
        log.warning("daily_report_failed error=%s", result.error)
        return 500, {"success": False, "error": result.error}
    return 200, {"success": True, **result.data}
