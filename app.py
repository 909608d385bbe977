"""
Main application for the SEO crawl pipeline - wires and controls all components
"""
import argparse
import asyncio
import json
import logging
import time
import uuid
from dataclasses import asdict
from typing import Any, Dict, List, Optional

from config import PipelineConfig, load_config
from crawler import CrawlOrchestrator
from data_quality import DataQualityValidator
from database import ContentStore
from exceptions import PipelineError, ValidationError
from fetcher import PageFetcher, RobotsChecker
from metric_providers import build_provider
from models import AnalysisResult, CrawlJob, CrawlResult, NewsSource
from monitoring import HealthChecker, MetricsCollector, init_monitoring
from news_crawler import validate_source
from scheduler import CrawlJobHandlers, JobScheduler
from scoring import AnalysisTarget, ScoringEngine, default_result
from sitemaps import SitemapDiscovery
from utils import PerformanceMonitor, validate_url

logger = logging.getLogger(__name__)


class PipelineApp:
    """Composition root: builds every service from one configuration"""

    def __init__(self, config: Optional[PipelineConfig] = None, fetcher_factory=PageFetcher,
                 setup_logs: bool = True):
        self.config = config or load_config()
        self.fetcher_factory = fetcher_factory

        if setup_logs:
            self.metrics = init_monitoring(self.config.log_level, self.config.log_dir, self.config.log_format)
        else:
            self.metrics = MetricsCollector()

        self.store = ContentStore(self.config.db_path)
        self.quality = DataQualityValidator(
            self.store,
            stale_days=self.config.stale_days,
            sample_max=self.config.quality_sample_max
        )
        self.scoring = ScoringEngine(
            weights=self.config.scoring_weights,
            metric_provider=build_provider(self.config.metrics_api_url, self.config.metrics_api_key),
            store=self.store
        )
        self.handlers = CrawlJobHandlers(self.config, self.store, self.metrics, fetcher_factory)
        self.scheduler = JobScheduler(
            handler=self.handlers,
            store=self.store,
            metrics=self.metrics,
            max_workers=self.config.scheduler_workers,
            poll_seconds=self.config.scheduler_poll_seconds
        )
        self.health_checker = HealthChecker(self.metrics, self.store, self.scheduler)
        self.performance = PerformanceMonitor()

        self.scheduler.register_system_jobs({
            'news-crawl': self.handlers.run_news_job,
            'competitor-crawl': self.handlers.run_competitor_job,
            'quality-check': self.run_quality_check,
            'data-cleanup': self.run_data_cleanup,
            'health-check': self.run_health_check,
        })
        self.scheduler.load_jobs(self.store.get_jobs())

        logger.info("Pipeline application initialized")

    # System jobs

    def run_quality_check(self) -> bool:
        report = self.quality.run_quality_check()
        logger.info(f"Quality check complete: score {report.quality_score}")
        return True

    def run_data_cleanup(self) -> bool:
        removed = self.store.cleanup_old_data(self.config.cleanup_days)
        logger.info(f"Data cleanup removed {removed} rows")
        return True

    def run_health_check(self) -> bool:
        health = self.health_checker.check_health()
        if health['overall_status'] != 'healthy':
            for name, component in health['components'].items():
                for issue in component.get('issues', []):
                    logger.warning(f"Health {name}: {issue}")
        return health['overall_status'] != 'critical'

    # Scheduler control

    def start(self):
        self.scheduler.start()

    def stop(self):
        self.scheduler.stop()

    def add_job(self, name: str, job_type: str, schedule_expression: str,
                job_config: Optional[Dict[str, Any]] = None, max_retries: Optional[int] = None) -> CrawlJob:
        """Create and schedule a crawl job; raises SchedulingError for bad configuration"""
        job = CrawlJob(
            id=str(uuid.uuid4()),
            name=name,
            type=job_type,
            schedule=schedule_expression,
            max_retries=self.config.default_max_retries if max_retries is None else max_retries,
            config=job_config or {}
        )
        return self.scheduler.add_job(job)

    def trigger_job(self, job_id: str) -> bool:
        return self.scheduler.trigger_job_now(job_id)

    def reactivate_job(self, job_id: str) -> CrawlJob:
        return self.scheduler.reactivate_job(job_id)

    def list_jobs(self) -> List[Dict[str, Any]]:
        return self.scheduler.list_jobs()

    # Snapshots of state

    def get_metrics(self) -> Dict[str, Any]:
        return {
            'scheduler': self.scheduler.get_metrics(),
            'crawl': asdict(self.metrics.get_crawl_metrics()),
            'content': self.store.count_content_by_type(),
            'snapshots': self.store.count_snapshots(),
            'timings': self.performance.get_metrics(),
        }

    def get_quality_report(self) -> Dict[str, Any]:
        return self.quality.generate_report().to_dict()

    def get_quality_metrics(self) -> Dict[str, Any]:
        return self.quality.get_quality_metrics()

    def get_system_status(self) -> Dict[str, Any]:
        health = self.health_checker.check_health()
        scheduler = self.scheduler.get_metrics()
        return {
            'timestamp': health['timestamp'],
            'health': health,
            'scheduler_started': self.scheduler.is_started,
            'running_jobs': scheduler['running'],
            'active_jobs': scheduler['activeJobs'],
        }

    # Crawling and analysis

    def crawl_site(self, url: str, max_pages: Optional[int] = None, max_depth: Optional[int] = None) -> CrawlResult:
        return asyncio.run(self._crawl(url, max_pages, max_depth))

    async def _crawl(self, url: str, max_pages: Optional[int], max_depth: Optional[int]) -> CrawlResult:
        options = self.config.crawl
        robots = RobotsChecker(options.user_agent) if options.respect_robots else None
        sitemaps = SitemapDiscovery(options.user_agent) if options.follow_sitemaps else None
        async with self.fetcher_factory(options) as fetcher:
            orchestrator = CrawlOrchestrator(
                fetcher,
                options,
                store=self.store,
                robots=robots,
                sitemaps=sitemaps,
                metrics=self.metrics,
                similarity_threshold=self.config.similarity_threshold
            )
            return await orchestrator.crawl(url, max_pages=max_pages, max_depth=max_depth)

    def analyze_html(self, html: str, url: str = "", keyword: Optional[str] = None,
                     secondary_keywords: Optional[List[str]] = None) -> AnalysisResult:
        target = AnalysisTarget(
            url=url,
            primary_keyword=keyword or "",
            secondary_keywords=secondary_keywords or []
        )
        return self.scoring.analyze(html, target)

    def analyze_url(self, url: str, keyword: Optional[str] = None,
                    secondary_keywords: Optional[List[str]] = None) -> AnalysisResult:
        """Fetch one page, store its snapshot and score it"""
        if not validate_url(url):
            logger.error(f"Cannot analyze invalid URL: {url}")
            return default_result(url)

        with self.performance.timer(f"analyze {url}"):
            crawl = self.crawl_site(url, max_pages=1, max_depth=0)
            if not crawl.snapshots:
                reason = crawl.failures[0].message if crawl.failures else "no content"
                logger.error(f"Failed to analyze {url}: {reason}")
                return default_result(url)

            snapshot = crawl.snapshots[0]
            target = AnalysisTarget(
                url=snapshot.url,
                primary_keyword=keyword or "",
                secondary_keywords=secondary_keywords or [],
                load_time_ms=snapshot.load_time_ms,
                status_code=snapshot.status_code
            )
            return self.scoring.analyze(snapshot.signals, target)

    def add_news_source(self, name: str, url: str, selectors: Dict[str, str]) -> NewsSource:
        """Register a news source; raises ValidationError when misconfigured"""
        source = NewsSource(id=str(uuid.uuid4()), name=name, url=url, selectors=selectors)
        errors = validate_source(source)
        if errors:
            raise ValidationError(errors)
        self.store.save_news_source(source)
        logger.info(f"Added news source {name}")
        return source

    def cleanup_old_data(self, days_to_keep: Optional[int] = None) -> int:
        return self.store.cleanup_old_data(days_to_keep or self.config.cleanup_days)

    def shutdown(self):
        """Gracefully shutdown the application"""
        logger.info("Shutting down pipeline application")
        self.scheduler.shutdown(wait=False)
        logger.info("Application shutdown completed")


def create_cli():
    """Create command line interface"""
    parser = argparse.ArgumentParser(description="SEO crawl, scheduling and scoring pipeline")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    url_parser = subparsers.add_parser("analyze-url", help="Fetch and score a single URL")
    url_parser.add_argument("url", help="URL to analyze")
    url_parser.add_argument("--keyword", help="Primary keyword")
    url_parser.add_argument("--secondary", nargs="*", default=[], help="Secondary keywords")

    html_parser = subparsers.add_parser("analyze-html", help="Score a saved HTML file")
    html_parser.add_argument("path", help="HTML file")
    html_parser.add_argument("--url", default="", help="URL the HTML was served from")
    html_parser.add_argument("--keyword", help="Primary keyword")

    crawl_parser = subparsers.add_parser("crawl", help="Crawl a site")
    crawl_parser.add_argument("url", help="Seed URL")
    crawl_parser.add_argument("--max-pages", type=int, help="Maximum pages to store")
    crawl_parser.add_argument("--max-depth", type=int, help="Maximum link depth")

    job_parser = subparsers.add_parser("add-job", help="Schedule a recurring crawl job")
    job_parser.add_argument("name", help="Job name")
    job_parser.add_argument("type", choices=["seo", "news", "competitor"], help="Job type")
    job_parser.add_argument("schedule", help="Schedule, e.g. 'every 30 minutes' or 'every day at 03:00'")
    job_parser.add_argument("--targets", nargs="*", default=[], help="URLs or domains to crawl")
    job_parser.add_argument("--max-pages", type=int, default=1, help="Pages per target")
    job_parser.add_argument("--max-retries", type=int, help="Failures tolerated before deactivation")

    subparsers.add_parser("jobs", help="List scheduled jobs")

    trigger_parser = subparsers.add_parser("trigger", help="Run a job now")
    trigger_parser.add_argument("job_id", help="Job id or system job name")

    reactivate_parser = subparsers.add_parser("reactivate", help="Reactivate a deactivated job")
    reactivate_parser.add_argument("job_id", help="Job id")

    news_parser = subparsers.add_parser("add-news-source", help="Register a news source")
    news_parser.add_argument("name", help="Source name")
    news_parser.add_argument("url", help="Listing page URL")
    news_parser.add_argument("--headlines", required=True, help="Headline CSS selector")
    news_parser.add_argument("--links", required=True, help="Link CSS selector")
    news_parser.add_argument("--dates", help="Date CSS selector")
    news_parser.add_argument("--descriptions", help="Description CSS selector")

    subparsers.add_parser("quality-report", help="Generate a data quality report")
    subparsers.add_parser("metrics", help="Show pipeline metrics")
    subparsers.add_parser("status", help="Get system status")

    cleanup_parser = subparsers.add_parser("cleanup", help="Clean up old data")
    cleanup_parser.add_argument("--days", type=int, help="Days of data to keep")

    subparsers.add_parser("run", help="Run the scheduler in the foreground")

    server_parser = subparsers.add_parser("server", help="Run the control API")
    server_parser.add_argument("--host", default="0.0.0.0", help="Bind address")
    server_parser.add_argument("--port", type=int, default=8000, help="Server port")

    return parser


def _print(data: Any):
    print(json.dumps(data, indent=2, default=str))


def main(argv: Optional[List[str]] = None):
    """Main application entry point"""
    parser = create_cli()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return

    if args.command == "server":
        import uvicorn
        uvicorn.run("api:app", host=args.host, port=args.port, log_level="info")
        return

    app = PipelineApp()

    try:
        if args.command == "analyze-url":
            _print(app.analyze_url(args.url, args.keyword, args.secondary).to_dict())

        elif args.command == "analyze-html":
            with open(args.path, encoding="utf-8") as f:
                html = f.read()
            _print(app.analyze_html(html, args.url, args.keyword).to_dict())

        elif args.command == "crawl":
            result = app.crawl_site(args.url, args.max_pages, args.max_depth)
            _print({
                'seed_url': result.seed_url,
                'platform': result.platform,
                'pages': [snapshot.url for snapshot in result.snapshots],
                'duplicates': result.duplicates,
                'skipped': result.skipped,
                'failures': [asdict(failure) for failure in result.failures],
            })

        elif args.command == "add-job":
            job = app.add_job(
                args.name, args.type, args.schedule,
                {'targets': args.targets, 'max_pages': args.max_pages},
                args.max_retries
            )
            print(f"Scheduled job {job.id}")

        elif args.command == "jobs":
            _print(app.list_jobs())

        elif args.command == "trigger":
            started = app.trigger_job(args.job_id)
            print("Job started" if started else "Job not started (running or deactivated)")
            app.scheduler.wait_until_idle(timeout=3600)

        elif args.command == "reactivate":
            job = app.reactivate_job(args.job_id)
            print(f"Reactivated job {job.id}")

        elif args.command == "add-news-source":
            selectors = {
                key: value for key, value in {
                    'headlines': args.headlines,
                    'links': args.links,
                    'dates': args.dates,
                    'descriptions': args.descriptions,
                }.items() if value
            }
            source = app.add_news_source(args.name, args.url, selectors)
            print(f"Added news source {source.id}")

        elif args.command == "quality-report":
            _print(app.get_quality_report())

        elif args.command == "metrics":
            _print(app.get_metrics())

        elif args.command == "status":
            _print(app.get_system_status())

        elif args.command == "cleanup":
            removed = app.cleanup_old_data(args.days)
            print(f"Removed {removed} old rows")

        elif args.command == "run":
            app.start()
            print("Scheduler running. Press Ctrl+C to stop...")
            while True:
                time.sleep(60)
                status = app.get_system_status()
                logger.info(
                    f"System status: {status['health']['overall_status']} - "
                    f"running jobs: {len(status['running_jobs'])}"
                )

    except KeyboardInterrupt:
        print("\nInterrupted by user")
    except PipelineError as e:
        logger.error(f"Application error: {e}")
        print(f"Error: {e}")
    finally:
        app.shutdown()


if __name__ == "__main__":
    main()
