"""Background worker that claims queued jobs and runs report workflows."""

import asyncio
import logging
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

import sqlalchemy
from sqlalchemy import update
from sqlalchemy.orm import Session, sessionmaker

from reportflow.agents.critic import Critic
from reportflow.agents.planner import ResearchPlanner
from reportflow.agents.researcher import Researcher
from reportflow.agents.reviewer import Reviewer
from reportflow.agents.writer import Writer
from reportflow.config import settings
from reportflow.database import SessionLocal
from reportflow.models.job import (
    JOB_CANCELLED,
    JOB_DONE,
    JOB_FAILED,
    JOB_QUEUED,
    JOB_RUNNING,
    Job,
)
from reportflow.models.report import Report
from reportflow.services.cancellation import CancellationRegistry, cancellations
from reportflow.services.llm_client import LLMClient
from reportflow.services.report_store import ReportStore
from reportflow.services.search import SearchClient
from reportflow.workflow import ReportWorkflow, RunOutcome

logging.basicConfig(
    level=settings.LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)

logger = logging.getLogger(__name__)

JOB_STATUS_BY_OUTCOME = {
    RunOutcome.COMPLETED: JOB_DONE,
    RunOutcome.FAILED: JOB_FAILED,
    RunOutcome.CANCELLED: JOB_CANCELLED,
}


def build_workflow(
    session_factory: sessionmaker,
    registry: CancellationRegistry,
    llm=None,
    search=None,
) -> ReportWorkflow:
    """Wire capability clients and agents into a workflow engine."""
    llm = llm or LLMClient()
    search = search or SearchClient()
    return ReportWorkflow(
        store=ReportStore(session_factory),
        planner=ResearchPlanner(llm),
        researcher=Researcher(llm, search, question_delay=settings.RESEARCH_QUESTION_DELAY),
        critic=Critic(llm),
        writer=Writer(llm),
        reviewer=Reviewer(llm),
        cancellations=registry,
    )


class Worker:
    """Background worker for processing jobs.

    Runs on a single event loop; each claimed job becomes one task, up to
    ``concurrency`` at a time.
    """

    def __init__(
        self,
        session_factory: sessionmaker = SessionLocal,
        workflow: Optional[ReportWorkflow] = None,
        registry: CancellationRegistry = cancellations,
        poll_interval: Optional[float] = None,
        concurrency: Optional[int] = None,
        heartbeat_interval: Optional[float] = None,
    ):
        """Initialize worker."""
        self.session_factory = session_factory
        self.workflow = workflow or build_workflow(session_factory, registry)
        self.poll_interval = poll_interval if poll_interval is not None else settings.WORKER_POLL_INTERVAL
        self.concurrency = concurrency or settings.WORKER_CONCURRENCY
        self.heartbeat_interval = (
            heartbeat_interval if heartbeat_interval is not None else settings.JOB_HEARTBEAT_INTERVAL
        )
        self.active: Dict[str, asyncio.Task] = {}

    async def run(self, stop_event=None):
        """Main worker loop.

        Args:
            stop_event: Optional threading.Event to signal worker to stop
        """
        await self.wait_for_database()
        await asyncio.to_thread(self.recover_stale_jobs)

        while True:
            # Check if stop signal received
            if stop_event and stop_event.is_set():
                logger.info("Worker stop signal received")
                break

            try:
                claimed = None
                if len(self.active) < self.concurrency:
                    claimed = await asyncio.to_thread(self.claim_next_job)

                if claimed:
                    job_id, report_id, topic = claimed
                    task = asyncio.create_task(self.process_job(job_id, report_id, topic))
                    self.active[str(job_id)] = task
                    task.add_done_callback(lambda _t, key=str(job_id): self.active.pop(key, None))
                else:
                    await asyncio.sleep(self.poll_interval)

            except Exception as e:
                logger.error(f"Worker error: {e}", exc_info=True)
                await asyncio.sleep(self.poll_interval)

        if self.active:
            logger.info(f"Waiting for {len(self.active)} active runs to finish")
            await asyncio.gather(*self.active.values(), return_exceptions=True)

    async def run_once(self) -> Optional[RunOutcome]:
        """Claim and fully process a single job, if one is queued."""
        claimed = await asyncio.to_thread(self.claim_next_job)
        if not claimed:
            return None
        return await self.process_job(*claimed)

    async def wait_for_database(self, max_wait: int = 60):
        """Wait for the jobs table to exist (migrations may still be running)."""
        waited = 0
        while waited < max_wait:
            try:
                db = self.session_factory()
                try:
                    db.execute(sqlalchemy.text("SELECT 1 FROM jobs LIMIT 1"))
                finally:
                    db.close()
                logger.info("Database is ready, starting worker loop")
                return
            except Exception as e:
                logger.info(f"Waiting for database... ({waited}s): {e}")
                await asyncio.sleep(2)
                waited += 2

        logger.error(f"Database not ready after {max_wait} seconds, starting anyway...")

    def claim_next_job(self) -> Optional[Tuple]:
        """Atomically claim the oldest queued job.

        Returns:
            (job_id, report_id, topic), or None if nothing is queued
        """
        db: Session = self.session_factory()
        try:
            job = (
                db.query(Job)
                .filter(Job.status == JOB_QUEUED)
                .order_by(Job.created_at)
                .with_for_update(skip_locked=True)
                .first()
            )
            if job is None:
                return None

            # Conditional update: only one worker can move it out of 'queued'
            claimed = db.execute(
                update(Job)
                .where(Job.job_id == job.job_id, Job.status == JOB_QUEUED)
                .values(status=JOB_RUNNING, attempts=Job.attempts + 1, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount == 1
            report = db.get(Report, job.report_id)
            db.commit()

            if not claimed or report is None:
                return None

            logger.info(f"Claimed job {job.job_id} for report {report.id}")
            return job.job_id, report.id, report.topic
        finally:
            db.close()

    async def process_job(self, job_id, report_id, topic: str) -> RunOutcome:
        """Process a single job."""
        logger.info(f"Processing job {job_id} (report {report_id})")
        last_error = None
        heartbeat = asyncio.create_task(self._keep_alive(job_id))

        try:
            outcome = await self.workflow.run(report_id, topic)
        except Exception as e:
            # Engine errors outside a phase (e.g. the database went away)
            logger.error(f"Job {job_id} crashed: {e}", exc_info=True)
            last_error = str(e)
            await self.workflow.store.fail(report_id, "Report generation failed: internal error")
            outcome = RunOutcome.FAILED
        finally:
            heartbeat.cancel()

        await asyncio.to_thread(self.finish_job, job_id, JOB_STATUS_BY_OUTCOME[outcome], last_error)
        logger.info(f"Job {job_id} finished: {outcome.value}")
        return outcome

    async def _keep_alive(self, job_id):
        """Refresh the job lease while its workflow runs."""
        while True:
            await asyncio.sleep(self.heartbeat_interval)
            try:
                await asyncio.to_thread(self.touch_job, job_id)
            except Exception as e:
                logger.warning(f"Heartbeat for job {job_id} failed: {e}")

    def touch_job(self, job_id) -> bool:
        """Bump updated_at on a running job so stale recovery leaves it alone."""
        db = self.session_factory()
        try:
            touched = db.execute(
                update(Job)
                .where(Job.job_id == job_id, Job.status == JOB_RUNNING)
                .values(updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount == 1
            db.commit()
        finally:
            db.close()
        return touched

    def finish_job(self, job_id, status: str, last_error: Optional[str] = None):
        db = self.session_factory()
        try:
            job = db.get(Job, job_id)
            if job is None:
                # Report (and its jobs) deleted mid-run
                return
            job.status = status
            job.last_error = last_error
            db.commit()
        finally:
            db.close()

    def recover_stale_jobs(self) -> int:
        """Re-queue jobs left 'running' by a worker that died."""
        cutoff = datetime.utcnow() - timedelta(seconds=settings.JOB_STALE_AFTER_SECONDS)
        db = self.session_factory()
        try:
            count = db.execute(
                update(Job)
                .where(Job.status == JOB_RUNNING, Job.updated_at < cutoff)
                .values(status=JOB_QUEUED, updated_at=datetime.utcnow())
                .execution_options(synchronize_session=False)
            ).rowcount
            db.commit()
        finally:
            db.close()

        if count:
            logger.warning(f"Re-queued {count} stale running jobs")
        return count


def worker_loop(stop_event=None):
    """Run worker loop (for use as background thread).

    Args:
        stop_event: Optional threading.Event to signal worker to stop
    """
    worker = Worker()
    asyncio.run(worker.run(stop_event=stop_event))


def main():
    """Entry point for standalone worker."""
    try:
        asyncio.run(Worker().run())
    except KeyboardInterrupt:
        logger.info("Worker shutting down")


if __name__ == "__main__":
    main()
