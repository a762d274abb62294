import json
import logging
from types import SimpleNamespace

import pytest

from mixtape_player.config.settings import Settings
from mixtape_player.utils.http_client import _retry_delay
from mixtape_player.utils.logging import ConsoleFormatter, JsonFormatter


def _record(**extra):
    record = logging.LogRecord("mixtape_player.test", logging.INFO, __file__, 1, "Enriched %s", ("p1",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestFormatters:
    def test_json_includes_extras(self):
        line = JsonFormatter().format(_record(status="cached", product=("p1", "doc-1")))
        payload = json.loads(line)
        assert payload["msg"] == "Enriched p1"
        assert payload["status"] == "cached"
        assert payload["product"] == ["p1", "doc-1"]
        assert "lineno" not in payload

    def test_console_appends_extras(self):
        line = ConsoleFormatter().format(_record(status="skipped"))
        assert line.endswith("[status=skipped]")

    def test_console_without_extras(self):
        assert "[" not in ConsoleFormatter().format(_record())


class TestRetryDelay:
    @pytest.mark.parametrize("header,expected", [
        ("2", 2.0),
        ("600", 60.0),
        ("soon", 1.5 ** 2),
    ])
    def test_retry_after_header(self, header, expected):
        resp = SimpleNamespace(headers={"Retry-After": header})
        assert _retry_delay(resp, 2, 1.5) == expected

    def test_exponential_backoff(self):
        assert _retry_delay(None, 3, 2.0) == 8.0


class TestSettings:
    def test_api_base_trailing_slash(self):
        assert Settings(DISCOGS_API_BASE="https://api.discogs.com/").DISCOGS_API_BASE == "https://api.discogs.com"

    def test_sanity_requires_project_and_token(self):
        assert Settings(SANITY_PROJECT_ID="abc", SANITY_API_TOKEN=None).sanity_enabled is False
        assert Settings(SANITY_PROJECT_ID="abc", SANITY_API_TOKEN="t").sanity_enabled is True

    def test_megabytes(self):
        s = Settings(CACHE_GLOBAL_MAX_MEMORY_MB=2)
        assert s.cache_global_max_memory_bytes == 2 * 1024 * 1024
        assert s.mb(0.5) == 512 * 1024
