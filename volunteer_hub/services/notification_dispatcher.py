"""
Fire-and-forget delivery of signup notifications (email and Slack).

Callers submit a job and move on; a background worker delivers it. Delivery
failures are logged and never reach the operation that produced the job.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Dict, List, Union

from volunteer_hub.database import db
from volunteer_hub.services import email_service, slack_service
from volunteer_hub.services.auth_provider import get_auth_provider

logger = logging.getLogger(__name__)

SHUTDOWN_DRAIN_SECONDS = 5


@dataclass
class RoleConfirmationEmail:
    to: str
    first_name: Optional[str]
    role: Dict


@dataclass
class WelcomeEmail:
    to: str
    redirect_to: str
    prompt_waiver_and_emergency_contact: bool = False


@dataclass
class ParentGuardianConfirmationEmail:
    to: str
    parent_guardian_name: Optional[str]
    volunteer_first_name: Optional[str]
    volunteer_last_name: Optional[str]
    role: Dict


@dataclass
class ParentGuardianWaiverSignedEmail:
    to: str
    parent_guardian_name: Optional[str]
    volunteer_first_name: Optional[str]
    volunteer_last_name: Optional[str]


@dataclass
class SlackSignupNotification:
    """Fill counts are looked up when the job runs, not when it is submitted."""

    role_id: int
    volunteer_id: Optional[str] = None
    volunteer_name: Optional[str] = None
    volunteer_email: Optional[str] = None
    role_name: Optional[str] = None


NotificationJob = Union[
    RoleConfirmationEmail,
    WelcomeEmail,
    ParentGuardianConfirmationEmail,
    ParentGuardianWaiverSignedEmail,
    SlackSignupNotification,
]


class NotificationDispatcher:
    """In-process queue with one background delivery worker."""

    def __init__(self):
        self._queue: "asyncio.Queue[NotificationJob]" = asyncio.Queue()
        self._worker_task: Optional[asyncio.Task] = None
        self._stop_event = asyncio.Event()
        self.failed: List[NotificationJob] = []

    def start(self) -> None:
        """Start the background delivery worker."""
        if self._worker_task is None or self._worker_task.done():
            self._stop_event.clear()
            self._worker_task = asyncio.create_task(self._worker())
            logger.info("Notification dispatcher started")

    async def stop(self) -> None:
        """Give queued jobs a moment to go out, then stop the worker."""
        if self._worker_task is None or self._worker_task.done():
            return
        try:
            await asyncio.wait_for(self._queue.join(), timeout=SHUTDOWN_DRAIN_SECONDS)
        except asyncio.TimeoutError:
            logger.warning(f"Dropping {self._queue.qsize()} undelivered notification(s) at shutdown")
        self._stop_event.set()
        self._worker_task.cancel()
        try:
            await self._worker_task
        except asyncio.CancelledError:
            pass
        logger.info("Notification dispatcher stopped")

    def submit(self, job: NotificationJob) -> None:
        """Queue a job for delivery. Never blocks and never raises for delivery problems."""
        self._queue.put_nowait(job)
        logger.debug(f"Queued {type(job).__name__}")

    async def drain(self) -> None:
        """Wait until every queued job has been attempted."""
        await self._queue.join()

    async def _worker(self) -> None:
        while not self._stop_event.is_set():
            job = await self._queue.get()
            try:
                delivered = await self.deliver(job)
                if not delivered:
                    self.failed.append(job)
            except Exception as e:
                self.failed.append(job)
                logger.error(f"Error delivering {type(job).__name__}: {e}", exc_info=True)
            finally:
                self._queue.task_done()

    async def deliver(self, job: NotificationJob) -> bool:
        """Deliver one job right now. Returns False if the channel reported a failure."""
        if isinstance(job, RoleConfirmationEmail):
            message = email_service.build_role_confirmation(job.first_name, job.role)
            return await email_service.send_email(job.to, message["subject"], message["html"])

        if isinstance(job, WelcomeEmail):
            link = await get_auth_provider().generate_magic_link(job.to, job.redirect_to)
            message = email_service.build_welcome(link.action_link, job.prompt_waiver_and_emergency_contact)
            return await email_service.send_email(job.to, message["subject"], message["html"])

        if isinstance(job, ParentGuardianConfirmationEmail):
            message = email_service.build_parent_guardian_confirmation(
                job.parent_guardian_name, job.volunteer_first_name, job.volunteer_last_name, job.role
            )
            return await email_service.send_email(job.to, message["subject"], message["html"])

        if isinstance(job, ParentGuardianWaiverSignedEmail):
            message = email_service.build_parent_guardian_waiver_signed(
                job.parent_guardian_name, job.volunteer_first_name, job.volunteer_last_name
            )
            return await email_service.send_email(job.to, message["subject"], message["html"])

        if isinstance(job, SlackSignupNotification):
            return await self._deliver_slack(job)

        raise TypeError(f"Unknown notification job: {job!r}")

    async def _deliver_slack(self, job: SlackSignupNotification) -> bool:
        async with db.AsyncSessionLocal() as session:
            if not await slack_service.is_enabled(session):
                logger.info("Slack notifications are disabled. Skipped.")
                return True
            counts = await slack_service.get_fill_counts(session, job.role_id)
            name, email = job.volunteer_name, job.volunteer_email
            if not name or not email:
                resolved = await slack_service.resolve_volunteer(session, job.volunteer_id)
                name = name or resolved["name"]
                email = email or resolved["email"]

        text = slack_service.build_signup_message(
            volunteer_name=name,
            volunteer_email=email,
            role_name=job.role_name or counts["role_name"],
            role_filled=counts["role_filled"],
            role_total=counts["role_total"],
            all_filled=counts["all_filled"],
            all_total=counts["all_total"],
        )
        return await slack_service.post_message(text)


# Global dispatcher instance
_notification_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """Get the global notification dispatcher (created on first use)."""
    global _notification_dispatcher
    if _notification_dispatcher is None:
        _notification_dispatcher = NotificationDispatcher()
    return _notification_dispatcher
