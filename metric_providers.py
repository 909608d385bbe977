"""
Keyword and ranking metric providers

The pipeline only consumes two calls: get_keyword_metrics(keyword) and
get_rankings(keyword, domain). FallbackMetricProvider wraps any provider and
answers with estimated values, marked estimated=True, when it fails.
"""
import logging
from typing import Dict, List, Optional

from exceptions import MetricProviderError
from models import KeywordMetrics, RankingData
from utils import RobustSession, rate_limit

logger = logging.getLogger(__name__)


class MetricProvider:
    """Contract for external keyword metric sources"""

    def get_keyword_metrics(self, keyword: str) -> KeywordMetrics:
        raise NotImplementedError

    def get_rankings(self, keyword: str, domain: str,
                     competitors: Optional[List[str]] = None) -> RankingData:
        raise NotImplementedError


def estimate_keyword_metrics(keyword: str) -> KeywordMetrics:
    """
    Deterministic estimate from the shape of the keyword.

    Longer phrases are treated as lower volume and easier to rank for.
    """
    words = max(1, len(keyword.split()))
    volume = max(10, round(10000 / (words ** 2)))
    difficulty = max(5, 75 - 15 * (words - 1))

    return KeywordMetrics(
        keyword=keyword,
        volume=volume,
        difficulty=difficulty,
        cpc=round(0.5 + difficulty / 40, 2),
        estimated=True
    )


class FallbackMetricProvider(MetricProvider):
    """Wraps a provider; any failure yields estimated values instead of an error"""

    def __init__(self, provider: Optional[MetricProvider] = None):
        self.provider = provider

    def get_keyword_metrics(self, keyword: str) -> KeywordMetrics:
        if self.provider is None:
            return estimate_keyword_metrics(keyword)

        try:
            return self.provider.get_keyword_metrics(keyword)
        except Exception as e:
            logger.warning(f"Keyword metrics unavailable for '{keyword}', using estimates: {e}")
            return estimate_keyword_metrics(keyword)

    def get_rankings(self, keyword: str, domain: str,
                     competitors: Optional[List[str]] = None) -> RankingData:
        if self.provider is not None:
            try:
                return self.provider.get_rankings(keyword, domain, competitors)
            except Exception as e:
                logger.warning(f"Rankings unavailable for '{keyword}' on {domain}: {e}")

        return RankingData(keyword=keyword, domain=domain, position=None, estimated=True)


class HttpMetricProvider(MetricProvider):
    """JSON metrics API reached through RobustSession"""

    def __init__(self, base_url: str, api_key: Optional[str] = None,
                 session: Optional[RobustSession] = None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.session = session or RobustSession()

    @rate_limit(calls_per_second=2.0)
    def _get(self, path: str, params: Dict[str, str]) -> dict:
        headers = {'Authorization': f"Bearer {self.api_key}"} if self.api_key else {}
        response = self.session.get(f"{self.base_url}{path}", params=params, headers=headers)
        if response is None:
            raise MetricProviderError(f"No response from {self.base_url}{path}")

        try:
            data = response.json()
        except ValueError as e:
            raise MetricProviderError(f"Invalid JSON from {self.base_url}{path}: {e}")
        if not isinstance(data, dict):
            raise MetricProviderError(f"Unexpected payload from {self.base_url}{path}")
        return data

    def get_keyword_metrics(self, keyword: str) -> KeywordMetrics:
        data = self._get("/keywords", {'keyword': keyword})
        try:
            return KeywordMetrics(
                keyword=keyword,
                volume=int(data['volume']),
                difficulty=int(data['difficulty']),
                cpc=float(data.get('cpc') or 0.0)
            )
        except (KeyError, TypeError, ValueError) as e:
            raise MetricProviderError(f"Malformed keyword metrics for '{keyword}': {e}")

    def get_rankings(self, keyword: str, domain: str,
                     competitors: Optional[List[str]] = None) -> RankingData:
        params = {'keyword': keyword, 'domain': domain}
        if competitors:
            params['competitors'] = ",".join(competitors)
        data = self._get("/rankings", params)

        try:
            position = data.get('position')
            return RankingData(
                keyword=keyword,
                domain=domain,
                position=int(position) if position is not None else None,
                competitor_positions={
                    str(name): int(rank) for name, rank in (data.get('competitorPositions') or {}).items()
                }
            )
        except (AttributeError, TypeError, ValueError) as e:
            raise MetricProviderError(f"Malformed rankings for '{keyword}': {e}")


def build_provider(api_url: Optional[str], api_key: Optional[str] = None) -> FallbackMetricProvider:
    """Fallback-wrapped provider; estimates only when no API is configured"""
    if not api_url:
        return FallbackMetricProvider()
    return FallbackMetricProvider(HttpMetricProvider(api_url, api_key))
