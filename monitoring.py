"""
Logging, metrics and health checks for the crawl pipeline
"""
import logging
import logging.handlers
import os
import threading
from collections import deque
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Deque, Dict, Optional

import psutil

logger = logging.getLogger(__name__)

MAX_RESPONSE_SAMPLES = 1000
MAX_SYSTEM_SAMPLES = 100

DETAILED_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s'

# file name, minimum level
LOG_FILES = [
    ('pipeline.log', logging.DEBUG),
    ('errors.log', logging.ERROR),
]


def setup_logging(log_level: str = "INFO", log_dir: str = "logs",
                  console_format: str = "%(asctime)s - %(levelname)s - %(message)s"):
    """Replace root handlers with a console handler and rotating pipeline/error logs"""
    os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))
    root_logger.handlers.clear()

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter(console_format))
    root_logger.addHandler(console)

    detailed = logging.Formatter(DETAILED_FORMAT)
    for filename, level in LOG_FILES:
        handler = logging.handlers.RotatingFileHandler(
            os.path.join(log_dir, filename),
            maxBytes=10 * 1024 * 1024,
            backupCount=5,
            encoding='utf-8'
        )
        handler.setLevel(level)
        handler.setFormatter(detailed)
        root_logger.addHandler(handler)

    return root_logger


@dataclass
class SystemMetrics:
    """Host resource sample"""
    timestamp: str
    cpu_usage: float
    memory_usage: float
    disk_usage: float
    active_threads: int


@dataclass
class CrawlMetrics:
    """Crawl and job counters"""
    timestamp: str
    pages_fetched: int
    fetch_errors: int
    duplicates_skipped: int
    jobs_succeeded: int
    jobs_failed: int
    success_rate: float
    avg_response_time_ms: float


class MetricsCollector:
    """Thread-safe counters shared by crawls, scheduler workers and the API"""

    def __init__(self):
        self._lock = threading.Lock()
        self.system_metrics: Deque[SystemMetrics] = deque(maxlen=MAX_SYSTEM_SAMPLES)
        self.response_times: Deque[int] = deque(maxlen=MAX_RESPONSE_SAMPLES)
        self.counters: Dict[str, int] = {
            'pages_fetched': 0,
            'fetch_errors': 0,
            'duplicates_skipped': 0,
            'jobs_succeeded': 0,
            'jobs_failed': 0,
        }

    def _increment(self, name: str):
        with self._lock:
            self.counters[name] += 1

    def record_page_fetched(self, response_time_ms: int):
        with self._lock:
            self.counters['pages_fetched'] += 1
            self.response_times.append(response_time_ms)

    def record_fetch_error(self):
        self._increment('fetch_errors')

    def record_duplicate(self):
        self._increment('duplicates_skipped')

    def record_job(self, success: bool):
        self._increment('jobs_succeeded' if success else 'jobs_failed')

    def get_crawl_metrics(self) -> CrawlMetrics:
        with self._lock:
            counters = dict(self.counters)
            times = list(self.response_times)

        attempts = counters['pages_fetched'] + counters['fetch_errors']
        success_rate = counters['pages_fetched'] / attempts * 100 if attempts else 100.0
        avg_response = sum(times) / len(times) if times else 0.0

        return CrawlMetrics(
            timestamp=datetime.now().isoformat(),
            success_rate=round(success_rate, 2),
            avg_response_time_ms=round(avg_response, 2),
            **counters
        )

    def collect_system_metrics(self) -> SystemMetrics:
        """Sample CPU, memory and disk usage and keep the most recent samples"""
        sample = SystemMetrics(
            timestamp=datetime.now().isoformat(),
            cpu_usage=psutil.cpu_percent(interval=0.1),
            memory_usage=psutil.virtual_memory().percent,
            disk_usage=psutil.disk_usage('/').percent,
            active_threads=threading.active_count()
        )
        with self._lock:
            self.system_metrics.append(sample)
        return sample


SEVERITY_ORDER = ('unknown', 'healthy', 'warning', 'critical')

# (metric, label, unit, warning above, critical above)
SYSTEM_LIMITS = [
    ('cpu_usage', "CPU usage", "%", 80, 90),
    ('memory_usage', "Memory usage", "%", 85, 95),
]

MIN_FETCH_SUCCESS_RATE = {'warning': 90, 'critical': 80}
SLOW_LOAD_MS = 10000
LARGE_DB_MB = 1000


def worst_status(statuses) -> str:
    """Most severe of the given component statuses"""
    return max(statuses, key=SEVERITY_ORDER.index, default='healthy')


class HealthChecker:
    """Combines system, crawl, database and scheduler status"""

    def __init__(self, metrics_collector: MetricsCollector, store=None, scheduler=None):
        self.metrics_collector = metrics_collector
        self.store = store
        self.scheduler = scheduler

    def check_health(self) -> Dict[str, Any]:
        """Status per component; overall is the worst known component status"""
        components = {
            'system': self._check_system_health(),
            'crawling': self._check_crawl_health(),
            'database': self._check_database_health(),
            'scheduler': self._check_scheduler_health(),
        }
        known = [c['status'] for c in components.values() if c['status'] != 'unknown']

        return {
            'timestamp': datetime.now().isoformat(),
            'overall_status': worst_status(known),
            'components': components
        }

    def _check_system_health(self) -> Dict[str, Any]:
        sample = self.metrics_collector.collect_system_metrics()
        statuses, issues = ['healthy'], []

        for attr, label, unit, warning, critical in SYSTEM_LIMITS:
            value = getattr(sample, attr)
            if value > critical:
                statuses.append('critical')
                issues.append(f"{label} critical: {value:.1f}{unit}")
            elif value > warning:
                statuses.append('warning')
                issues.append(f"{label} high: {value:.1f}{unit}")

        return {
            'status': worst_status(statuses),
            'cpu_usage': sample.cpu_usage,
            'memory_usage': sample.memory_usage,
            'disk_usage': sample.disk_usage,
            'issues': issues
        }

    def _check_crawl_health(self) -> Dict[str, Any]:
        crawl = self.metrics_collector.get_crawl_metrics()
        statuses, issues = ['healthy'], []

        if crawl.success_rate < MIN_FETCH_SUCCESS_RATE['critical']:
            statuses.append('critical')
            issues.append(f"Fetch success rate critical: {crawl.success_rate:.1f}%")
        elif crawl.success_rate < MIN_FETCH_SUCCESS_RATE['warning']:
            statuses.append('warning')
            issues.append(f"Fetch success rate low: {crawl.success_rate:.1f}%")

        if crawl.avg_response_time_ms > SLOW_LOAD_MS:
            statuses.append('warning')
            issues.append(f"Slow page loads: {crawl.avg_response_time_ms:.0f}ms")

        return {
            'status': worst_status(statuses),
            'success_rate': crawl.success_rate,
            'avg_response_time_ms': crawl.avg_response_time_ms,
            'pages_fetched': crawl.pages_fetched,
            'issues': issues
        }

    def _check_database_health(self) -> Dict[str, Any]:
        if self.store is None:
            return {'status': 'unknown', 'issues': []}

        try:
            self.store.ping()
            size_mb = os.path.getsize(self.store.db_path) / (1024 * 1024)
        except Exception as e:
            logger.error(f"Database health check failed: {e}")
            return {'status': 'critical', 'issues': [f"Database unreachable: {e}"]}

        large = size_mb > LARGE_DB_MB
        return {
            'status': 'warning' if large else 'healthy',
            'size_mb': round(size_mb, 2),
            'issues': [f"Database size large: {size_mb:.1f}MB"] if large else []
        }

    def _check_scheduler_health(self) -> Dict[str, Any]:
        if self.scheduler is None:
            return {'status': 'unknown', 'issues': []}

        metrics = self.scheduler.get_metrics()
        deactivated = metrics['totalJobs'] - metrics['activeJobs']

        return {
            'status': 'warning' if deactivated > 0 else 'healthy',
            'active_jobs': metrics['activeJobs'],
            'running': metrics['running'],
            'issues': [f"{deactivated} job(s) deactivated"] if deactivated > 0 else []
        }


def init_monitoring(log_level: str = "INFO", log_dir: str = "logs",
                    console_format: Optional[str] = None) -> MetricsCollector:
    """Initialize logging and return a fresh metrics collector"""
    if console_format:
        setup_logging(log_level, log_dir, console_format)
    else:
        setup_logging(log_level, log_dir)
    logger.info("Monitoring initialized")
    return MetricsCollector()
