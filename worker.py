# worker.py
"""Runs the auto-transition monitor: one recurring job per organization.

    python worker.py                     # every organization that has schedules
    python worker.py --org acme --once   # a single tick, then exit
"""

import argparse
import logging
import threading
from typing import Iterable, List, Optional, Sequence, Set

import schedule
from pymongo.database import Database
from pymongo.errors import PyMongoError

from config import settings
from services.monitor import AutoTransitionMonitor
from utils.logging_config import setup_logging

ORG_SYNC_MINUTES = 5


def known_organizations(db: Database) -> Set[str]:
    organizations = set(db.schedule_templates.distinct("organization_id"))
    organizations.update(db.schedules.distinct("organization_id", {"status": "active"}))
    organizations.discard(None)
    return organizations


class MonitorScheduler:
    """Keeps one ``schedule`` job per organization, each ticking every ``interval`` seconds."""

    def __init__(
        self,
        db: Database,
        organizations: Optional[Iterable[str]] = None,
        interval: int = settings.monitor_interval_seconds,
    ):
        self.db = db
        self.monitor = AutoTransitionMonitor(db)
        self.interval = interval
        self.fixed_organizations = set(organizations) if organizations else None
        self.scheduler = schedule.Scheduler()
        self.jobs = {}

    def _tick(self, organization_id: str) -> None:
        try:
            self.monitor.tick(organization_id)
        except Exception:  # noqa: BLE001
            logging.exception(f"Monitor tick for {organization_id} failed")

    def sync_jobs(self) -> None:
        if self.fixed_organizations is not None:
            wanted = self.fixed_organizations
        else:
            try:
                wanted = known_organizations(self.db)
            except PyMongoError as exc:
                logging.warning(f"Could not list organizations, keeping current jobs: {exc}")
                return

        for organization_id in sorted(wanted - set(self.jobs)):
            logging.info(f"Monitoring {organization_id} every {self.interval}s")
            self.jobs[organization_id] = self.scheduler.every(self.interval).seconds.do(self._tick, organization_id)
        for organization_id in sorted(set(self.jobs) - wanted):
            logging.info(f"No longer monitoring {organization_id}")
            self.scheduler.cancel_job(self.jobs.pop(organization_id))

    def run_once(self) -> None:
        self.sync_jobs()
        for organization_id in sorted(self.jobs):
            self._tick(organization_id)

    def run_forever(self, stop: Optional[threading.Event] = None) -> None:
        stop = stop or threading.Event()
        self.run_once()
        if self.fixed_organizations is None:
            self.scheduler.every(ORG_SYNC_MINUTES).minutes.do(self.sync_jobs)
        while not stop.is_set():
            try:
                self.scheduler.run_pending()
            except Exception:  # noqa: BLE001
                logging.exception("Scheduler error:")
            stop.wait(1)
        self.scheduler.clear()


def start_in_background(db: Database, organizations: Optional[List[str]] = None) -> threading.Event:
    """Used by the API process when MONITOR_ENABLED is set; set the returned event to stop."""
    stop = threading.Event()
    runner = MonitorScheduler(db, organizations)
    thread = threading.Thread(target=runner.run_forever, args=(stop,), name="auto-transition-monitor", daemon=True)
    thread.start()
    return stop


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(description="Auto-transition monitor for schedule instances")
    p.add_argument("--org", nargs="+", default=None, help="Organization ids (default: every organization with schedules)")
    p.add_argument("--interval", type=int, default=settings.monitor_interval_seconds, help="Seconds between ticks")
    p.add_argument("--once", action="store_true", help="Run a single tick per organization and exit")
    p.add_argument("--log-level", default=settings.log_level)
    return p


def main_cli(argv: Sequence[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    setup_logging(args.log_level)

    from database import db

    runner = MonitorScheduler(db, args.org, interval=args.interval)
    if args.once:
        runner.run_once()
        return 0

    logging.info("Auto-transition monitor started")
    try:
        runner.run_forever()
    except KeyboardInterrupt:
        logging.info("Auto-transition monitor stopped")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main_cli())
