"""
Periodic OTP housekeeping.

Runs OTPValidator.cleanup_expired on an APScheduler background scheduler
so expired and unreadable records do not accumulate between validations.
"""

import logging
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES, EVENT_JOB_MISSED
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..config import OTP_SWEEP_INTERVAL_SECONDS


logger = logging.getLogger(__name__)

JOB_ID = "otp-cleanup"


class OTPSweeper:
    """
    Background cleanup of stale OTP records.

    Example:
        >>> sweeper = OTPSweeper(validator)
        >>> sweeper.start()
        ...
        >>> sweeper.stop()
    """

    def __init__(self, validator, interval_seconds: int = OTP_SWEEP_INTERVAL_SECONDS,
                 event_logger=None, scheduler: Optional[BackgroundScheduler] = None):
        if interval_seconds < 1:
            raise ValueError("interval_seconds must be positive")
        self._validator = validator
        self._interval = interval_seconds
        self._events = event_logger
        self._scheduler = scheduler or BackgroundScheduler(timezone="UTC", daemon=True)
        self._scheduler.add_listener(
            self._on_scheduler_event,
            EVENT_JOB_MISSED | EVENT_JOB_MAX_INSTANCES | EVENT_JOB_ERROR,
        )

    @classmethod
    def from_settings(cls, validator, settings, event_logger=None,
                      scheduler: Optional[BackgroundScheduler] = None) -> "OTPSweeper":
        return cls(validator, interval_seconds=settings.otp_sweep_interval_seconds,
                   event_logger=event_logger, scheduler=scheduler)

    def _on_scheduler_event(self, event) -> None:
        job_id = getattr(event, "job_id", "?")
        if event.code == EVENT_JOB_MISSED:
            logger.warning("OTP sweep missed a run (job_id=%s)", job_id)
        elif event.code == EVENT_JOB_MAX_INSTANCES:
            logger.warning("OTP sweep still running, skipped (job_id=%s)", job_id)
        elif event.code == EVENT_JOB_ERROR:
            logger.error("OTP sweep failed (job_id=%s): %r", job_id, getattr(event, "exception", None))

    def run_once(self) -> int:
        """
        Sweep now.

        Returns:
            Number of records removed
        """
        removed = self._validator.cleanup_expired()
        if removed and self._events is not None:
            self._events.log_otp_swept(removed)
        return removed

    def start(self) -> None:
        """Schedule the sweep and start the scheduler (idempotent)."""
        if self._scheduler.get_job(JOB_ID) is None:
            self._scheduler.add_job(
                self.run_once,
                trigger=IntervalTrigger(seconds=self._interval),
                id=JOB_ID,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
        if not self._scheduler.running:
            self._scheduler.start()
            logger.info("OTP sweeper started (every %ss)", self._interval)

    def stop(self, wait: bool = False) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=wait)
            logger.info("OTP sweeper stopped")

    @property
    def interval_seconds(self) -> int:
        return self._interval

    @property
    def running(self) -> bool:
        return self._scheduler.running
