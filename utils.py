"""
Shared helpers: provider HTTP session, call throttling, URL and text checks, timing
"""
import functools
import logging
import re
import threading
import time
from contextlib import contextmanager
from typing import Callable, Dict, Optional
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import DEFAULT_USER_AGENT

logger = logging.getLogger(__name__)

RETRY_STATUSES = (429, 500, 502, 503, 504)

# Anything outside word characters, whitespace and common punctuation
_UNPRINTABLE = re.compile(r'[^\w\s\.,!?;:\-()\[\]{}"\'%$&/]')


def rate_limit(calls_per_second: float = 1.0):
    """
    Throttle a callable to at most ``calls_per_second`` across all threads.

    Scheduler workers share provider clients, so the interval is held
    under a lock rather than per caller.
    """
    interval = 1.0 / calls_per_second

    def decorator(func: Callable) -> Callable:
        lock = threading.Lock()
        next_allowed = [0.0]

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            with lock:
                wait = next_allowed[0] - time.monotonic()
                if wait > 0:
                    time.sleep(wait)
                next_allowed[0] = time.monotonic() + interval
            return func(*args, **kwargs)
        return wrapper
    return decorator


class RobustSession:
    """requests session for metric provider APIs: retries transient statuses, never raises"""

    def __init__(self, max_retries: int = 3, backoff_factor: float = 0.3,
                 timeout: int = 30, user_agent: str = DEFAULT_USER_AGENT):
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'User-Agent': user_agent,
            'Accept': 'application/json',
        })

        retries = Retry(
            total=max_retries,
            backoff_factor=backoff_factor,
            status_forcelist=RETRY_STATUSES,
            allowed_methods=frozenset(["GET", "HEAD"]),
            raise_on_status=False
        )
        for prefix in ("http://", "https://"):
            self.session.mount(prefix, HTTPAdapter(max_retries=retries))

    def get(self, url: str, **kwargs) -> Optional[requests.Response]:
        """GET with the session timeout; None unless the API answered 200"""
        try:
            response = self.session.get(url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout:
            logger.error(f"Provider timeout after {self.timeout}s: {url}")
            return None
        except requests.exceptions.RequestException as e:
            logger.error(f"Provider request failed for {url}: {e}")
            return None

        if response.status_code != 200:
            level = logging.ERROR if response.status_code in (401, 403) else logging.WARNING
            logger.log(level, f"Provider returned HTTP {response.status_code} for {url}")
            return None

        return response

    def close(self):
        self.session.close()


def validate_url(url: str) -> bool:
    """True for absolute http(s) URLs with a host"""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def clean_text(text: Optional[str]) -> str:
    """Collapse whitespace and drop symbols that are not ordinary punctuation"""
    if not text:
        return ""
    return _UNPRINTABLE.sub('', " ".join(text.split())).strip()


class PerformanceMonitor:
    """Wall-clock durations of named operations"""

    def __init__(self):
        self.durations: Dict[str, float] = {}

    @contextmanager
    def timer(self, operation: str):
        started = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - started
            self.durations[operation] = duration
            logger.info(f"{operation} took {duration:.2f}s")

    def get_metrics(self) -> Dict[str, float]:
        return dict(self.durations)
