"""
Recurring crawl job scheduling with retry and deactivation
"""
import asyncio
import logging
import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import schedule

from config import PipelineConfig
from crawler import CrawlOrchestrator
from exceptions import SchedulingError
from fetcher import PageFetcher, RobotsChecker
from models import CrawlJob, JobExecution, JOB_TYPES
from news_crawler import NewsCrawler
from sitemaps import SitemapDiscovery

logger = logging.getLogger(__name__)

SYSTEM_JOBS = [
    ("news-crawl", "every 2 hours"),
    ("competitor-crawl", "every day at 03:00"),
    ("quality-check", "every day at 06:00"),
    ("data-cleanup", "every sunday at 02:00"),
    ("health-check", "every hour"),
]

WEEKDAYS = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
UNITS = ("second", "minute", "hour", "day", "week")

_INTERVAL = re.compile(r"^every (\d+) (second|minute|hour|day|week)s?$")
_SINGLE_UNIT = re.compile(r"^every (second|minute|hour|day|week)$")
_AT_TIME = re.compile(r"^every (day|" + "|".join(WEEKDAYS) + r") at (\d{1,2}:\d{2}(?::\d{2})?)$")
_HOURLY_AT = re.compile(r"^every hour at (:\d{2})$")


def parse_schedule(expression: str, scheduler: schedule.Scheduler) -> schedule.Job:
    """
    Turn a schedule expression into an unbound schedule.Job.

    Supported forms: 'every N minutes', 'every hour', 'every day at 03:00',
    'every sunday at 02:00', 'every hour at :30'. Raises SchedulingError
    for anything else.
    """
    text = " ".join((expression or "").lower().split())

    try:
        match = _INTERVAL.match(text)
        if match:
            interval = int(match.group(1))
            if interval < 1:
                raise SchedulingError(f"Interval must be positive: {expression}")
            return getattr(scheduler.every(interval), match.group(2) + "s")

        match = _SINGLE_UNIT.match(text)
        if match:
            return getattr(scheduler.every(), match.group(1) + "s")

        match = _AT_TIME.match(text)
        if match:
            return getattr(scheduler.every(), match.group(1)).at(match.group(2))

        match = _HOURLY_AT.match(text)
        if match:
            return scheduler.every().hour.at(match.group(1))

    except schedule.ScheduleError as e:
        raise SchedulingError(f"Invalid schedule '{expression}': {e}")

    raise SchedulingError(f"Unsupported schedule expression: '{expression}'")


class JobScheduler:
    """
    Runs crawl jobs and system jobs on recurring triggers.

    A trigger for a job that is still running is skipped, never queued.
    Handlers run on a bounded worker pool so tick() never blocks on them.
    """

    def __init__(self, handler: Optional[Callable[[CrawlJob], Any]] = None, store=None,
                 metrics=None, max_workers: int = 4, poll_seconds: float = 1.0):
        self.handler = handler
        self.store = store
        self.metrics = metrics
        self.poll_seconds = poll_seconds

        self.scheduler = schedule.Scheduler()
        self.jobs: Dict[str, CrawlJob] = {}
        self.system_jobs: Dict[str, Callable[[], Any]] = {}
        self._schedules: Dict[str, str] = {}

        self._running = set()
        self._lock = threading.Lock()
        # schedule.Scheduler is not thread-safe; guards every use of self.scheduler
        self._schedule_lock = threading.RLock()
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="crawl-job")

        self._stop_event = threading.Event()
        self._thread: Optional[threading.Thread] = None

        self.successful_runs = 0
        self.failed_runs = 0
        self.durations: List[int] = []
        self.last_run_time: Optional[str] = None

    # Registration

    def add_job(self, job: CrawlJob) -> CrawlJob:
        """Register a crawl job; raises SchedulingError for bad type or schedule"""
        if job.type not in JOB_TYPES:
            raise SchedulingError(f"Unknown job type '{job.type}' for job {job.id}")
        if job.id in self.system_jobs:
            raise SchedulingError(f"Job id {job.id} is reserved for a system job")

        if job.is_active:
            self._schedule(job.id, job.schedule)
        self.jobs[job.id] = job
        self._persist(job)

        logger.info(f"Added job '{job.name}' ({job.id}) {job.schedule}")
        return job

    def load_jobs(self, jobs: List[CrawlJob]) -> int:
        """Register stored jobs, skipping any with bad configuration"""
        loaded = 0
        for job in jobs:
            try:
                self.add_job(job)
                loaded += 1
            except SchedulingError as e:
                logger.error(f"Skipping job {job.id}: {e}")
        logger.info(f"Loaded {loaded} scheduled crawl jobs")
        return loaded

    def register_system_job(self, name: str, expression: str, handler: Callable[[], Any]):
        self._schedule(name, expression)
        self.system_jobs[name] = handler
        logger.info(f"Registered system job {name} ({expression})")

    def register_system_jobs(self, handlers: Dict[str, Callable[[], Any]]):
        for name, expression in SYSTEM_JOBS:
            if name in handlers:
                self.register_system_job(name, expression, handlers[name])

    def _schedule(self, job_id: str, expression: str):
        with self._schedule_lock:
            self.scheduler.clear(job_id)
            job = parse_schedule(expression, self.scheduler)
            job.do(self._dispatch, job_id).tag(job_id)
            self._schedules[job_id] = expression

    def _unschedule(self, job_id: str):
        with self._schedule_lock:
            self.scheduler.clear(job_id)

    # Triggering

    def tick(self):
        """Fire every due trigger"""
        with self._schedule_lock:
            self.scheduler.run_pending()

    def trigger_job_now(self, job_id: str) -> bool:
        """Run a job immediately unless it is already running"""
        if job_id not in self.jobs and job_id not in self.system_jobs:
            raise SchedulingError(f"Unknown job: {job_id}")
        if job_id in self.jobs and not self.jobs[job_id].is_active:
            logger.warning(f"Job {job_id} is deactivated; reactivate it first")
            return False
        return self._dispatch(job_id)

    def _dispatch(self, job_id: str) -> bool:
        with self._lock:
            if job_id in self._running:
                logger.info(f"Skipping {job_id} - already running")
                return False
            self._running.add(job_id)

        try:
            self._executor.submit(self._execute, job_id)
        except RuntimeError as e:
            with self._lock:
                self._running.discard(job_id)
            logger.error(f"Could not dispatch {job_id}: {e}")
            return False
        return True

    def _execute(self, job_id: str):
        start_time = time.time()
        started_at = datetime.now().isoformat()
        success = False
        error = None

        try:
            logger.info(f"Starting scheduled job: {job_id}")
            if job_id in self.system_jobs:
                outcome = self.system_jobs[job_id]()
            else:
                if self.handler is None:
                    raise SchedulingError(f"No handler configured for job {job_id}")
                outcome = self.handler(self.jobs[job_id])
            success = outcome is not False
            if not success:
                error = "No target crawled successfully"
        except Exception as e:
            error = str(e)
            logger.error(f"Failed scheduled job: {job_id}: {e}")
        finally:
            duration_ms = int((time.time() - start_time) * 1000)
            try:
                self._complete(job_id, started_at, duration_ms, success, error)
            finally:
                with self._lock:
                    self._running.discard(job_id)

    def _complete(self, job_id: str, started_at: str, duration_ms: int, success: bool, error: Optional[str]):
        with self._lock:
            if success:
                self.successful_runs += 1
            else:
                self.failed_runs += 1
            self.durations.append(duration_ms)
            self.last_run_time = datetime.now().isoformat()

        if success:
            logger.info(f"Completed scheduled job: {job_id} ({duration_ms}ms)")
        else:
            logger.warning(f"Scheduled job {job_id} failed ({duration_ms}ms): {error}")

        job = self.jobs.get(job_id)
        if job is not None:
            job.last_run = self.last_run_time
            if success:
                job.retry_attempts = 0
            elif job.retry_attempts + 1 > job.max_retries:
                self._deactivate(job)
            else:
                job.retry_attempts += 1
                logger.warning(f"Job {job.name} failed, retry {job.retry_attempts}/{job.max_retries}")
            self._persist(job)

        if self.metrics:
            self.metrics.record_job(success)
        if self.store is not None:
            self.store.save_job_execution(JobExecution(
                job_id=job_id,
                started_at=started_at,
                duration_ms=duration_ms,
                success=success,
                error=error
            ))

    def _deactivate(self, job: CrawlJob):
        job.is_active = False
        job.retry_attempts = job.max_retries
        self._unschedule(job.id)
        logger.error(f"Job {job.name} failed permanently after {job.max_retries} retries; deactivated")

    def reactivate_job(self, job_id: str) -> CrawlJob:
        if job_id not in self.jobs:
            raise SchedulingError(f"Unknown job: {job_id}")

        job = self.jobs[job_id]
        job.is_active = True
        job.retry_attempts = 0
        self._schedule(job.id, job.schedule)
        self._persist(job)
        logger.info(f"Reactivated job {job.name}")
        return job

    def _persist(self, job: CrawlJob):
        if self.store is not None:
            self.store.save_job(job)

    # Inspection

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._running

    def running_jobs(self) -> List[str]:
        with self._lock:
            return sorted(self._running)

    def wait_until_idle(self, timeout: float = 10.0) -> bool:
        deadline = time.time() + timeout
        while time.time() < deadline:
            if not self.running_jobs():
                return True
            time.sleep(0.01)
        return not self.running_jobs()

    def next_run(self, job_id: str) -> Optional[str]:
        with self._schedule_lock:
            for job in self.scheduler.get_jobs(job_id):
                return job.next_run.isoformat() if job.next_run else None
        return None

    def get_metrics(self) -> Dict[str, Any]:
        with self._lock:
            average = sum(self.durations) / len(self.durations) if self.durations else 0
            return {
                'totalJobs': len(self.jobs),
                'activeJobs': sum(1 for job in self.jobs.values() if job.is_active),
                'systemJobs': len(self.system_jobs),
                'successfulRuns': self.successful_runs,
                'failedRuns': self.failed_runs,
                'averageDuration': round(average, 2),
                'lastRunTime': self.last_run_time,
                'running': sorted(self._running),
            }

    def list_jobs(self) -> List[Dict[str, Any]]:
        jobs = []
        for job in self.jobs.values():
            entry = job.to_dict()
            entry['next_run'] = self.next_run(job.id)
            entry['running'] = self.is_running(job.id)
            jobs.append(entry)
        return jobs

    # Lifecycle

    def start(self):
        """Start the background trigger loop"""
        if self._thread and self._thread.is_alive():
            logger.warning("Scheduler is already running")
            return

        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, daemon=True, name="job-scheduler")
        self._thread.start()
        logger.info("Job scheduler started")

    def _run_loop(self):
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception as e:
                logger.error(f"Scheduler error: {e}")
            self._stop_event.wait(self.poll_seconds)

    def stop(self):
        """Stop the trigger loop; in-flight jobs finish on their workers"""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=5)
            self._thread = None
        logger.info("Job scheduler stopped")

    def shutdown(self, wait: bool = True):
        self.stop()
        self._executor.shutdown(wait=wait)

    @property
    def is_started(self) -> bool:
        return self._thread is not None and self._thread.is_alive()


class CrawlJobHandlers:
    """Executes crawl jobs by type; each run gets its own event loop and browser"""

    def __init__(self, config: PipelineConfig, store=None, metrics=None, fetcher_factory=PageFetcher):
        self.config = config
        self.store = store
        self.metrics = metrics
        self.fetcher_factory = fetcher_factory

    def __call__(self, job: CrawlJob) -> bool:
        handlers = {
            'seo': self.run_seo_job,
            'news': self.run_news_job,
            'competitor': self.run_competitor_job,
        }
        if job.type not in handlers:
            raise SchedulingError(f"Unknown job type: {job.type}")
        return handlers[job.type](job)

    def _orchestrator(self, fetcher, options) -> CrawlOrchestrator:
        robots = RobotsChecker(options.user_agent) if options.respect_robots else None
        sitemaps = SitemapDiscovery(options.user_agent) if options.follow_sitemaps else None
        return CrawlOrchestrator(
            fetcher,
            options,
            store=self.store,
            robots=robots,
            sitemaps=sitemaps,
            metrics=self.metrics,
            similarity_threshold=self.config.similarity_threshold
        )

    def run_seo_job(self, job: CrawlJob) -> bool:
        targets = job.config.get('targets') or job.config.get('urls')
        if not targets or not isinstance(targets, list):
            logger.error(f"Invalid SEO job config for {job.id}: missing targets list")
            return False

        max_pages = int(job.config.get('max_pages', 1))
        results = asyncio.run(self._crawl_seo(targets, max_pages))
        successful = sum(1 for result in results if result.success)
        logger.info(f"SEO crawl completed: {successful}/{len(results)} targets successful")
        return successful > 0

    async def _crawl_seo(self, targets: List[str], max_pages: int):
        options = self.config.crawl
        async with self.fetcher_factory(options) as fetcher:
            orchestrator = self._orchestrator(fetcher, options)
            if max_pages <= 1:
                return await orchestrator.crawl_multiple(targets)
            return [await orchestrator.crawl(target, max_pages=max_pages) for target in targets]

    def run_news_job(self, job: Optional[CrawlJob] = None) -> bool:
        sources = self.store.get_news_sources() if self.store is not None else []
        if not sources:
            logger.info("No active news sources configured")
            return True

        results = asyncio.run(self._crawl_news(sources))
        return any(result.success for result in results)

    async def _crawl_news(self, sources):
        async with self.fetcher_factory(self.config.news_crawl) as fetcher:
            return await NewsCrawler(fetcher, store=self.store).crawl_sources(sources)

    def run_competitor_job(self, job: Optional[CrawlJob] = None) -> bool:
        if job is not None:
            domains = job.config.get('domains') or job.config.get('targets')
            max_pages = int(job.config.get('max_pages', 10))
        else:
            domains = self.config.competitor_domains
            max_pages = 10

        if not domains or not isinstance(domains, list):
            logger.error("Invalid competitor job config: missing domains list")
            return job is None

        successful = asyncio.run(self._crawl_competitors(domains, max_pages))
        logger.info(f"Competitor crawl completed: {successful}/{len(domains)} domains successful")
        return successful > 0

    async def _crawl_competitors(self, domains: List[str], max_pages: int) -> int:
        options = self.config.crawl
        successful = 0

        async with self.fetcher_factory(options) as fetcher:
            orchestrator = self._orchestrator(fetcher, options)
            for index, domain in enumerate(domains):
                competitor = await orchestrator.crawl_competitor(domain, max_pages)
                if competitor.pages:
                    successful += 1
                if index < len(domains) - 1 and self.config.competitor_delay_ms > 0:
                    await asyncio.sleep(self.config.competitor_delay_ms / 1000)

        return successful
