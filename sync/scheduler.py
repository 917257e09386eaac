# © 2024–2025 Harnisch LLC. All Rights Reserved.
# Licensed exclusively for use by UiT The Arctic University of Norway (Tromsø).
# Unauthorized use, distribution, or modification is prohibited.

"""
Background Scheduler for periodic full syncs and structure checks
"""
import logging
import threading
import time
from threading import Lock
from typing import List

import schedule

from utils.timezone import format_local_time, get_local_time

logger = logging.getLogger(__name__)


class SyncScheduler:
    """Runs full_sync and check_structure_change for a set of semesters every interval"""

    def __init__(self, orchestrator, semesters: List[str], interval_min: int = 360):
        self.orchestrator = orchestrator
        self.semesters = list(semesters)
        self.interval_min = interval_min
        self.jobs = schedule.Scheduler()
        self.scheduler_lock = Lock()
        self.scheduler_running = False
        self.scheduler_thread = None
        self.jobs.every(self.interval_min).minutes.do(self.run_scheduled_sync)

    def start(self):
        """Start the scheduler in a background thread"""
        with self.scheduler_lock:
            if self.scheduler_thread is None or not self.scheduler_thread.is_alive():
                logger.info(f"Starting scheduler thread at {format_local_time(get_local_time())}...")
                self.scheduler_running = True
                self.scheduler_thread = threading.Thread(target=self._run_scheduler, daemon=True)
                self.scheduler_thread.start()
            else:
                logger.info("Scheduler already running")

    def stop(self):
        """Stop the scheduler"""
        with self.scheduler_lock:
            self.scheduler_running = False

        logger.info(f"Stopping scheduler at {format_local_time(get_local_time())}...")

    def is_running(self):
        """Check if scheduler is running"""
        with self.scheduler_lock:
            return bool(self.scheduler_running and self.scheduler_thread and self.scheduler_thread.is_alive())

    def run_forever(self):
        """Run in the foreground until interrupted, starting with one sync right away"""
        with self.scheduler_lock:
            self.scheduler_running = True
        self.run_scheduled_sync()
        try:
            self._run_scheduler()
        except KeyboardInterrupt:
            self.stop()

    def _run_scheduler(self):
        logger.info(
            f"Scheduler started - {', '.join(self.semesters) or 'no semesters'} every "
            f"{self.interval_min} minutes - started at {format_local_time(get_local_time())}"
        )

        while True:
            with self.scheduler_lock:
                if not self.scheduler_running:
                    break

            self.jobs.run_pending()
            time.sleep(60)  # Check every minute

        logger.info(f"Scheduler stopped at {format_local_time(get_local_time())}")

    def run_scheduled_sync(self) -> bool:
        """One round: a structure check and a full sync per semester. Never raises."""
        if not self.semesters:
            logger.warning("⚠️ No semesters configured for scheduled sync (SYNC_SEMESTERS)")
            return False

        success = True
        for semester in self.semesters:
            try:
                logger.info(f"Running scheduled sync for {semester} at {format_local_time(get_local_time())}")
                self.orchestrator.check_structure_change(semester)
                summary = self.orchestrator.full_sync(semester)
            except Exception as e:
                # Don't let sync errors crash the scheduler
                logger.error(f"❌ Scheduled sync of {semester} failed: {e}")
                success = False
                continue

            if summary.get('success'):
                logger.info(f"✅ Scheduled sync of {semester} completed: {summary['total']} courses")
            else:
                logger.warning(
                    f"⚠️ Scheduled sync of {semester} completed with issues: {len(summary.get('failed', []))} failed"
                )
                success = False
        return success
