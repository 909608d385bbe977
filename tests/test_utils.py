"""
Tests for utility functions and decorators
"""
import pytest
import time
import requests
from unittest.mock import Mock, patch

from utils import rate_limit, RobustSession, validate_url, clean_text, PerformanceMonitor


class TestRateLimitDecorator:
    """Tests for rate limit decorator"""

    def test_rate_limit_basic(self):
        """Test basic rate limiting functionality"""
        call_times = []

        @rate_limit(calls_per_second=5.0)  # 5 calls per second = 0.2s interval
        def limited_function():
            call_times.append(time.time())
            return "called"

        # Make multiple calls
        for _ in range(3):
            limited_function()

        assert len(call_times) == 3
        time_diff = call_times[1] - call_times[0]
        assert time_diff >= 0.15  # Should be at least close to 0.2s

    def test_rate_limit_no_delay_first_call(self):
        """Test that first call has no delay"""
        start_time = time.time()

        @rate_limit(calls_per_second=1.0)
        def limited_function():
            return time.time()

        first_call_time = limited_function()
        assert first_call_time - start_time < 0.1  # Should be immediate


class TestRobustSession:
    """Tests for RobustSession class"""

    def test_session_initialization(self):
        """Test session initialization"""
        session = RobustSession(max_retries=3, timeout=30, user_agent="TestBot/1.0")
        assert session.timeout == 30
        assert session.session.headers["User-Agent"] == "TestBot/1.0"
        assert session.session.get_adapter("https://api.example.com").max_retries.total == 3

    @patch('requests.Session.get')
    def test_successful_request(self, mock_get):
        """Test successful HTTP request"""
        mock_response = Mock()
        mock_response.status_code = 200
        mock_get.return_value = mock_response

        session = RobustSession()
        response = session.get("https://api.example.com/keywords", params={'keyword': "seo"})

        assert response is mock_response
        assert mock_get.call_args[1]['params'] == {'keyword': "seo"}
        assert mock_get.call_args[1]['timeout'] == 30

    @pytest.mark.parametrize("status", [401, 403, 404, 500])
    @patch('requests.Session.get')
    def test_error_status_returns_none(self, mock_get, status):
        """Test non-200 responses"""
        mock_response = Mock()
        mock_response.status_code = status
        mock_get.return_value = mock_response

        assert RobustSession().get("https://api.example.com/keywords") is None

    @pytest.mark.parametrize("error", [
        requests.exceptions.Timeout(),
        requests.exceptions.ConnectionError(),
        requests.exceptions.TooManyRedirects(),
    ])
    @patch('requests.Session.get')
    def test_transport_errors_return_none(self, mock_get, error):
        """Test timeout, connection and other request failures"""
        mock_get.side_effect = error

        assert RobustSession().get("https://api.example.com/keywords") is None


class TestValidation:
    """Tests for validation functions"""

    def test_validate_url_valid(self):
        """Test URL validation with valid URLs"""
        valid_urls = [
            "https://example.com",
            "http://www.example.com/path?query=1",
            "https://subdomain.example.com:8080/path",
        ]

        for url in valid_urls:
            assert validate_url(url) is True

    def test_validate_url_invalid(self):
        """Test URL validation with invalid URLs"""
        invalid_urls = [
            "not-a-url",
            "ftp://example.com",
            "https://",
            "",
            "example.com",
        ]

        for url in invalid_urls:
            assert validate_url(url) is False


class TestTextProcessing:
    """Tests for text processing functions"""

    def test_clean_text(self):
        """Test text cleaning"""
        assert clean_text("  Hello   world  \n\t ") == "Hello world"
        assert clean_text("Heating™ tips: save 50% (today)!") == "Heating tips: save 50% (today)!"
        assert clean_text("") == ""
        assert clean_text(None) == ""


class TestPerformanceMonitor:
    """Tests for performance monitoring"""

    def test_timer(self):
        monitor = PerformanceMonitor()
        with monitor.timer("crawl"):
            time.sleep(0.01)

        assert monitor.get_metrics()["crawl"] > 0

    def test_timer_records_failed_operations(self):
        monitor = PerformanceMonitor()
        with pytest.raises(RuntimeError):
            with monitor.timer("crawl"):
                raise RuntimeError("fetch failed")

        assert "crawl" in monitor.get_metrics()
