"""
Tests for keyword metric providers and their fallback
"""
from unittest.mock import Mock

import pytest

from exceptions import MetricProviderError
from metric_providers import (
    FallbackMetricProvider, HttpMetricProvider, build_provider, estimate_keyword_metrics
)
from models import KeywordMetrics


def json_response(payload):
    response = Mock()
    response.json.return_value = payload
    return response


def http_provider(response):
    session = Mock()
    session.get.return_value = response
    return HttpMetricProvider("https://metrics.example.com/v1/", api_key="secret", session=session), session


class TestEstimates:

    def test_single_word_keyword(self):
        metrics = estimate_keyword_metrics("furnace")
        assert metrics.estimated
        assert metrics.volume == 10000
        assert metrics.difficulty == 75

    def test_long_tail_keyword_is_easier(self):
        metrics = estimate_keyword_metrics("furnace repair near me")
        assert metrics.volume == 625
        assert metrics.difficulty == 30


class TestFallbackMetricProvider:
    """Test class for provider failure handling"""

    def test_estimates_without_provider(self):
        assert FallbackMetricProvider().get_keyword_metrics("furnace").estimated

    def test_uses_provider_when_it_works(self):
        provider = Mock()
        provider.get_keyword_metrics.return_value = KeywordMetrics("furnace", 500, 20, 1.0)

        metrics = FallbackMetricProvider(provider).get_keyword_metrics("furnace")

        assert metrics.volume == 500
        assert not metrics.estimated

    def test_provider_failure_yields_estimate(self):
        provider = Mock()
        provider.get_keyword_metrics.side_effect = MetricProviderError("quota exceeded")

        metrics = FallbackMetricProvider(provider).get_keyword_metrics("furnace")

        assert metrics.estimated
        assert metrics.keyword == "furnace"

    def test_rankings_failure_yields_unknown_position(self):
        provider = Mock()
        provider.get_rankings.side_effect = TimeoutError("slow")

        rankings = FallbackMetricProvider(provider).get_rankings("furnace", "example.com")

        assert rankings.position is None
        assert rankings.estimated


class TestHttpMetricProvider:
    """Test class for the JSON metrics API client"""

    def test_keyword_metrics(self):
        provider, session = http_provider(json_response({'volume': "1200", 'difficulty': 40, 'cpc': 1.5}))

        metrics = provider.get_keyword_metrics("furnace repair")

        assert metrics == KeywordMetrics("furnace repair", 1200, 40, 1.5)
        url = session.get.call_args[0][0]
        kwargs = session.get.call_args[1]
        assert url == "https://metrics.example.com/v1/keywords"
        assert kwargs['params'] == {'keyword': "furnace repair"}
        assert kwargs['headers'] == {'Authorization': "Bearer secret"}

    def test_rankings(self):
        provider, session = http_provider(json_response({'position': 3, 'competitorPositions': {'rival.com': 1}}))

        rankings = provider.get_rankings("furnace repair", "example.com", ["rival.com"])

        assert rankings.position == 3
        assert rankings.competitor_positions == {'rival.com': 1}
        assert session.get.call_args[1]['params']['competitors'] == "rival.com"

    def test_no_response(self):
        provider, _ = http_provider(None)
        with pytest.raises(MetricProviderError):
            provider.get_keyword_metrics("furnace")

    def test_invalid_json(self):
        response = Mock()
        response.json.side_effect = ValueError("Expecting value")
        provider, _ = http_provider(response)

        with pytest.raises(MetricProviderError):
            provider.get_keyword_metrics("furnace")

    def test_malformed_payload(self):
        provider, _ = http_provider(json_response({'volume': 10}))
        with pytest.raises(MetricProviderError):
            provider.get_keyword_metrics("furnace")

    def test_non_object_payload(self):
        provider, _ = http_provider(json_response([1, 2, 3]))
        with pytest.raises(MetricProviderError):
            provider.get_rankings("furnace", "example.com")


class TestBuildProvider:

    def test_without_api(self):
        provider = build_provider(None)
        assert isinstance(provider, FallbackMetricProvider)
        assert provider.provider is None

    def test_with_api(self):
        provider = build_provider("https://metrics.example.com", "key")
        assert isinstance(provider.provider, HttpMetricProvider)
        assert provider.provider.api_key == "key"
