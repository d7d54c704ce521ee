"""Tests for archive URL validation."""

import pytest

from core.security.url_validation import (
    DEFAULT_ALLOWED_HOSTS,
    get_allowed_hosts,
    validate_download_url,
    validate_path_segment,
)

VALID_URL = "https://data.binance.vision/data/spot/daily/klines/BTCUSDT/1m/BTCUSDT-1m-2025-01-01.zip"


class TestValidatePathSegment:
    @pytest.mark.parametrize("segment", ["BTCUSDT", "1mo", "2025-01-01", "a_b.c"])
    def test_valid(self, segment):
        assert validate_path_segment(segment) == (True, "")

    @pytest.mark.parametrize("segment", ["", ".", "..", "BTC/USDT", "a b", "x?y", "x#y", "x\\y"])
    def test_invalid(self, segment):
        is_valid, error = validate_path_segment(segment)
        assert not is_valid
        assert error


class TestValidateDownloadUrl:
    def test_valid(self):
        assert validate_download_url(VALID_URL) == (True, "")

    @pytest.mark.parametrize(
        "url,fragment",
        [
            ("", "Empty"),
            (VALID_URL.replace("https", "http", 1), "HTTPS"),
            ("https:///data/x.zip", "hostname"),
            ("https://user:pw@data.binance.vision/x.zip", "Credentials"),
            (VALID_URL + "?a=1", "Query"),
            (VALID_URL + "#frag", "Query"),
            ("https://evil.example.com/x.zip", "allowlist"),
        ],
    )
    def test_invalid(self, url, fragment):
        is_valid, error = validate_download_url(url)
        assert not is_valid
        assert fragment in error

    def test_host_match_is_case_insensitive(self):
        url = VALID_URL.replace("data.binance.vision", "DATA.Binance.Vision")
        assert validate_download_url(url)[0]

    def test_explicit_allowlist(self):
        assert validate_download_url("https://mirror.example.com/x.zip", {"Mirror.Example.com"})[0]


class TestGetAllowedHosts:
    def test_default(self):
        assert get_allowed_hosts() == DEFAULT_ALLOWED_HOSTS

    def test_environment_override(self, monkeypatch):
        monkeypatch.setenv("KLINE_ALLOWED_HOSTS", " Mirror.Example.com , data.binance.vision ,")
        assert get_allowed_hosts() == {"mirror.example.com", "data.binance.vision"}

    def test_mirror_extends_default(self, monkeypatch):
        monkeypatch.setenv("KLINE_ALLOWED_HOSTS", "mirror.example.com")

        assert get_allowed_hosts() == {"mirror.example.com", "data.binance.vision"}
        assert validate_download_url(VALID_URL) == (True, "")
