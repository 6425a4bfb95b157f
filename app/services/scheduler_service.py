# =====================================================
# FILE: app/services/scheduler_service.py
# Background Job Scheduler for package expiry and OTP cleanup
# =====================================================

import asyncio
from typing import Callable, List, Optional
import logging

from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.models.package import PackageStatus
from app.services.package_repository import PackageRepository
from app.services.package_state_service import PackageStateService
from app.utils.datetime_helpers import utcnow

logger = logging.getLogger(__name__)


class SchedulerService:
    """Background job scheduler"""

    def __init__(self, tick_seconds: int = 60):
        self.jobs: List[dict] = []
        self.running = False
        self.tick_seconds = tick_seconds

    def add_job(self, name: str, func: Callable, interval_minutes: int):
        """Add a scheduled job"""
        self.jobs.append({
            "name": name,
            "func": func,
            "interval": interval_minutes,
            "last_run": None
        })
        logger.info(f"Scheduled job '{name}' every {interval_minutes} minutes")

    async def run_pending(self):
        """Run every job whose interval has elapsed"""
        for job in self.jobs:
            now = utcnow()
            should_run = (
                job["last_run"] is None or
                (now - job["last_run"]).total_seconds() >= job["interval"] * 60
            )

            if should_run:
                try:
                    logger.info(f"⏱️ Running job: {job['name']}")
                    if asyncio.iscoroutinefunction(job["func"]):
                        await job["func"]()
                    else:
                        job["func"]()
                    job["last_run"] = now
                    logger.info(f" Job completed: {job['name']}")
                except Exception as e:
                    logger.error(f" Job failed: {job['name']} - {e}")

    async def start(self):
        """Start the scheduler"""
        self.running = True
        logger.info("🚀 Background scheduler started")

        while self.running:
            await self.run_pending()
            await asyncio.sleep(self.tick_seconds)

    def stop(self):
        """Stop the scheduler"""
        self.running = False
        logger.info("Scheduler stopped")


# =====================================================
# SCHEDULED JOB FUNCTIONS
# =====================================================

def expire_overdue_packages(db: Optional[Session] = None) -> int:
    """Move Sent packages past their expiry date to Expired"""
    owns_session = db is None
    db = db or SessionLocal()
    expired = 0
    try:
        repo = PackageRepository(db)
        for package_id in repo.list_overdue_package_ids(utcnow(), PackageStatus.SENT.value):
            try:
                package = repo.get_package(package_id, for_update=True)
                if package.status == PackageStatus.SENT.value and PackageStateService.expire(db, package):
                    expired += 1
                db.commit()
            except Exception as e:
                db.rollback()
                logger.error(f"Failed to expire package {package_id}: {e}")

        logger.info(f"Expiry check complete. {expired} packages expired.")
        return expired

    finally:
        if owns_session:
            db.close()


def purge_expired_otps(db: Optional[Session] = None) -> int:
    """Delete OTP records past their expiry"""
    owns_session = db is None
    db = db or SessionLocal()
    try:
        removed = PackageRepository(db).purge_expired_otps(utcnow())
        db.commit()
        logger.info(f"OTP cleanup complete. {removed} codes removed.")
        return removed

    except Exception:
        db.rollback()
        raise

    finally:
        if owns_session:
            db.close()


# =====================================================
# SCHEDULER INITIALIZATION
# =====================================================

scheduler = SchedulerService(tick_seconds=settings.SCHEDULER_TICK_SECONDS)

def setup_scheduler():
    """Configure all scheduled jobs"""
    scheduler.add_job("Package Expiry Check", expire_overdue_packages, 5)
    scheduler.add_job("OTP Cleanup", purge_expired_otps, 10)

    return scheduler
