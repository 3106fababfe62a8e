"""
Tests for multi-method scans.
"""

import pytest

from fakes import FakeTransport, active_handler, failing
from param_miner.core.config import Config, GuesserConfig
from param_miner.core.exceptions import BaselineUnavailable
from param_miner.guesser import GuesserScan
from param_miner.guesser.models import Completion, GuessMethod

WORDS = ["id", "debug", "foo", "page"]


def get_and_json():
    return Config(guesser=GuesserConfig(url_get_request=True, url_json_request=True))


class TestGuesserScan:
    """Running every enabled method against one target."""

    @pytest.mark.asyncio
    async def test_all_enabled_methods_run(self, target):
        scan = GuesserScan(target, get_and_json(), transport=FakeTransport(active_handler("debug")), wordlist=WORDS)

        report = await scan.run()

        assert set(report.reports) == {GuessMethod.GET, GuessMethod.JSON}
        assert sorted((r.method.value, r.name) for r in report.results) == [("GET", "debug"), ("JSON", "debug")]
        assert not report.stopped_early
        assert scan.pool.closed

    @pytest.mark.asyncio
    async def test_baseline_failure_only_aborts_its_method(self, target):
        inner = active_handler("debug")

        def handler(request, params):
            if request.headers.get("Content-Type") == "application/json":
                return failing()
            return inner(request, params)

        scan = GuesserScan(target, get_and_json(), transport=FakeTransport(handler), wordlist=WORDS)

        report = await scan.run()

        assert report.reports[GuessMethod.GET].completion is Completion.COMPLETE
        assert report.reports[GuessMethod.GET].names == ["debug"]
        json_report = report.reports[GuessMethod.JSON]
        assert json_report.completion is Completion.ABORTED
        assert isinstance(json_report.error, BaselineUnavailable)
        assert report.stopped_early

    @pytest.mark.asyncio
    async def test_stop_before_run(self, target):
        transport = FakeTransport(active_handler("debug"))
        scan = GuesserScan(target, get_and_json(), transport=transport, wordlist=WORDS)
        scan.stop()

        report = await scan.run()

        assert all(r.completion is Completion.CANCELLED for r in report.reports.values())
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_no_method_enabled(self, target):
        transport = FakeTransport(active_handler())
        scan = GuesserScan(target, Config(guesser=GuesserConfig(url_get_request=False)), transport=transport)

        report = await scan.run()

        assert report.reports == {}
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_bundled_wordlist_is_used_by_default(self, target):
        transport = FakeTransport(active_handler("debug"))
        scan = GuesserScan(target, Config(), transport=transport)

        report = await scan.run()

        assert report.reports[GuessMethod.GET].names == ["debug"]

    def test_progress_before_run(self, target):
        scan = GuesserScan(target, Config())
        assert scan.get_progress() == {'completed_probes': 0, 'active_probes': 0, 'queued_probes': 0}

    def test_scan_logs_under_its_target_host(self, target):
        scan = GuesserScan(target, Config())
        assert scan.logger.name == "param_miner.scan.target_test"
