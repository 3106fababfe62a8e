"""
Tests for the guess coordinator: narrowing, verification, retries and cancellation.
"""

import asyncio
import html

import pytest

from fakes import FakeTransport, active_handler, failing, make_response, sent_params
from param_miner.core.config import GuesserConfig
from param_miner.core.exceptions import BaselineUnavailable, KillThreshold
from param_miner.core.worker_pool import WorkerPool
from param_miner.guesser.coordinator import GuessCoordinator
from param_miner.guesser.models import Completion, GuessMethod, GuessMode, ProbeOutcome, ProbeStatus
from param_miner.guesser.partitioner import max_generations
from param_miner.guesser.prober import CandidateProber

WORDS = [f"p{i}" for i in range(20)]


def make_coordinator(transport, target, pool_size=4, prober=None, **settings):
    config = GuesserConfig(**settings)
    return GuessCoordinator(transport, target, WorkerPool(pool_size), config, prober)


class TestNarrowing:
    """Divide and conquer over the wordlist."""

    @pytest.mark.asyncio
    async def test_worked_example(self, target):
        transport = FakeTransport(active_handler("debug"))
        coordinator = make_coordinator(transport, target, initial_group_size=2)

        report = await coordinator.run(GuessMethod.GET, ["id", "debug", "foo"])

        assert report.names == ["debug"]
        assert report.completion is Completion.COMPLETE
        assert report.generations == 2
        assert report.confirmed == ["debug"]
        assert report.requests_sent == 6
        assert len(transport.requests) == 6
        [result] = report.results
        assert result.method is GuessMethod.GET
        assert result.value == "100001"
        assert "body content changed" in result.reasons

    @pytest.mark.asyncio
    async def test_nothing_active(self, target):
        coordinator = make_coordinator(FakeTransport(active_handler()), target)

        report = await coordinator.run(GuessMethod.GET, WORDS)

        assert report.results == set()
        assert report.completion is Completion.COMPLETE
        assert report.generations == 1

    @pytest.mark.asyncio
    async def test_empty_wordlist_only_sends_baseline(self, target):
        transport = FakeTransport(active_handler())
        coordinator = make_coordinator(transport, target)

        assert await coordinator.discover(GuessMethod.GET, []) == set()
        assert len(transport.requests) == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("group_size", [1, 2, 3, 8, 64])
    async def test_single_parameter_is_isolated(self, target, group_size):
        coordinator = make_coordinator(
            FakeTransport(active_handler("p13")), target, initial_group_size=group_size
        )

        report = await coordinator.run(GuessMethod.GET, WORDS)

        assert report.names == ["p13"]
        assert report.generations <= max_generations(group_size)

    @pytest.mark.asyncio
    async def test_several_parameters(self, target):
        coordinator = make_coordinator(FakeTransport(active_handler("p0", "p7", "p19")), target,
                                       initial_group_size=8)

        found = await coordinator.discover(GuessMethod.GET, WORDS)

        assert sorted(r.name for r in found) == ["p0", "p19", "p7"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("method", list(GuessMethod))
    async def test_every_method(self, target, method):
        transport = FakeTransport(active_handler("debug"))
        coordinator = make_coordinator(transport, target)

        found = await coordinator.discover(method, ["id", "debug", "foo"])

        assert [(r.name, r.method) for r in found] == [("debug", method)]
        assert all(r.method == method.http_method for r in transport.requests)

    @pytest.mark.asyncio
    async def test_control_parameter_is_dropped_from_wordlist(self, target):
        transport = FakeTransport(active_handler("debug"))
        coordinator = make_coordinator(transport, target)

        report = await coordinator.run(GuessMethod.GET, ["zap", "debug", "debug", ""])

        assert report.names == ["debug"]
        assert all(sent["zap"] == "123" for sent in transport.sent)

    @pytest.mark.asyncio
    async def test_concurrent_methods_share_one_coordinator(self, target):
        coordinator = make_coordinator(FakeTransport(active_handler("debug")), target)

        get, json_ = await asyncio.gather(
            coordinator.run(GuessMethod.GET, WORDS + ["debug"]),
            coordinator.run(GuessMethod.JSON, WORDS + ["debug"]),
        )

        assert get.names == json_.names == ["debug"]
        assert {r.method for r in get.results} == {GuessMethod.GET}
        assert {r.method for r in json_.results} == {GuessMethod.JSON}

    @pytest.mark.asyncio
    async def test_requests_stay_within_pool_size(self, target):
        transport = FakeTransport(active_handler(), delay=0.01)
        coordinator = make_coordinator(transport, target, pool_size=2, initial_group_size=1)

        await coordinator.run(GuessMethod.GET, WORDS)

        assert transport.max_in_flight <= 2


class NoisyProber(CandidateProber):
    """Reports every group as changed the first time it is probed."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.seen = set()

    async def probe(self, baseline, method, group, mode=GuessMode.BRUTEFORCE):
        if group not in self.seen:
            self.seen.add(group)
            return ProbeOutcome(group=group, status=ProbeStatus.OK, changed=True,
                                reasons=("noise",), signature=baseline, mode=mode)
        return await super().probe(baseline, method, group, mode)


class TestVerification:
    """Only reproducible changes are reported."""

    @pytest.mark.asyncio
    async def test_one_shot_noise_is_discarded(self, target):
        transport = FakeTransport(active_handler("real"))
        prober = NoisyProber(transport, target)
        coordinator = make_coordinator(transport, target, prober=prober)

        report = await coordinator.run(GuessMethod.GET, ["a", "b", "real", "c"])

        assert sorted(report.confirmed) == ["a", "b", "c", "real"]
        assert report.names == ["real"]

    @pytest.mark.asyncio
    async def test_dynamic_page_needs_calibration(self, target):
        counter = {"n": 0}
        inner = active_handler("debug", base_body="<html><body></body></html>")

        def handler(request, params):
            counter["n"] += 1
            response = inner(request, params)
            response.body = response.body.replace("<body>", f"<body><p>visitor {counter['n'] % 10}</p>")
            return response

        coordinator = make_coordinator(FakeTransport(handler), target, baseline_samples=2)

        report = await coordinator.run(GuessMethod.GET, ["id", "debug", "foo"])

        assert report.names == ["debug"]

    @pytest.mark.asyncio
    async def test_escaped_self_link_is_not_a_change(self, target):
        def handler(request, params):
            return make_response(f'<a href="{html.escape(request.url)}">next page</a>')

        coordinator = make_coordinator(FakeTransport(handler), target)

        report = await coordinator.run(GuessMethod.GET, ["id", "debug", "foo"])

        assert report.confirmed == []
        assert report.results == set()


class TestFailures:
    """Retries, coverage gaps and early termination."""

    @pytest.mark.asyncio
    async def test_transient_failure_is_retried(self, target):
        inner = active_handler("debug")
        failed = []

        def handler(request, params):
            if "debug" in params and not failed:
                failed.append(params)
                return failing("timeout")
            return inner(request, params)

        coordinator = make_coordinator(FakeTransport(handler), target)

        report = await coordinator.run(GuessMethod.GET, ["id", "debug", "foo"])

        assert report.names == ["debug"]
        assert report.gaps == []
        assert report.requests_sent == 7

    @pytest.mark.asyncio
    async def test_exhausted_retries_leave_a_gap(self, target):
        inner = active_handler("debug")

        def handler(request, params):
            return failing() if "broken" in params else inner(request, params)

        coordinator = make_coordinator(FakeTransport(handler), target,
                                       initial_group_size=1, retry_ceiling=2)

        report = await coordinator.run(GuessMethod.GET, ["id", "debug", "broken"])

        assert report.names == ["debug"]
        assert report.completion is Completion.COMPLETE
        assert [gap.names for gap in report.gaps] == [("broken",)]
        assert report.gaps[0].attempts == 2

    @pytest.mark.asyncio
    async def test_baseline_unavailable(self, target):
        transport = FakeTransport(lambda request, params: failing())
        coordinator = make_coordinator(transport, target, retry_ceiling=3)

        with pytest.raises(BaselineUnavailable) as exc_info:
            await coordinator.discover(GuessMethod.GET, WORDS)

        assert exc_info.value.attempts == 3
        assert len(transport.requests) == 3

    @pytest.mark.asyncio
    async def test_kill_threshold_stops_the_run(self, target):
        def handler(request, params):
            return failing() if len(params) > 1 else make_response()

        coordinator = make_coordinator(FakeTransport(handler), target,
                                       kill_threshold=3, retry_ceiling=5)

        report = await coordinator.run(GuessMethod.GET, ["a", "b", "c", "d"])

        assert report.completion is Completion.KILLED
        assert isinstance(report.error, KillThreshold)
        assert report.error.failures == 3
        assert report.results == set()
        assert report.stopped_early

    @pytest.mark.asyncio
    async def test_kill_during_verification_keeps_verified_results(self, target):
        inner = active_handler("a", "b")
        b_requests = []

        def handler(request, params):
            if "b" in params:
                b_requests.append(params)
                if len(b_requests) == 2:
                    return failing()
            return inner(request, params)

        coordinator = make_coordinator(FakeTransport(handler), target,
                                       initial_group_size=1, kill_threshold=1)

        report = await coordinator.run(GuessMethod.GET, ["a", "b"])

        assert report.completion is Completion.KILLED
        assert report.confirmed == ["a", "b"]
        assert report.names == ["a"]


class TestCancellation:
    """Stopping a coordinator mid-run."""

    @pytest.mark.asyncio
    async def test_stop_mid_generation(self, target):
        coordinator = None

        def on_request(count, request):
            if count == 3:
                coordinator.stop()

        transport = FakeTransport(active_handler("p3"), delay=0.01, on_request=on_request)
        coordinator = make_coordinator(transport, target, initial_group_size=8)

        report = await asyncio.wait_for(coordinator.run(GuessMethod.GET, WORDS[:16]), timeout=5)

        assert report.completion is Completion.CANCELLED
        assert report.generations == 1
        assert report.results == set()
        assert len(transport.requests) == 3
        assert coordinator.stopped

    @pytest.mark.asyncio
    async def test_stop_before_run(self, target):
        transport = FakeTransport(active_handler("debug"))
        coordinator = make_coordinator(transport, target)
        coordinator.stop()

        report = await coordinator.run(GuessMethod.GET, WORDS)

        assert report.completion is Completion.CANCELLED
        assert transport.requests == []

    @pytest.mark.asyncio
    async def test_stop_after_first_generation(self, target):
        coordinator = None

        def on_request(count, request):
            # 1 baseline + 2 groups, so the 4th request opens generation 2 of 3
            if count == 4:
                coordinator.stop()

        transport = FakeTransport(active_handler("p1"), on_request=on_request)
        coordinator = make_coordinator(transport, target, initial_group_size=4)

        report = await asyncio.wait_for(coordinator.run(GuessMethod.GET, WORDS[:8]), timeout=5)

        assert report.completion is Completion.CANCELLED
        assert report.generations == 2
        assert report.confirmed == []
        assert report.results == set()
        assert len(transport.requests) == 4

    @pytest.mark.asyncio
    async def test_stop_during_verification_keeps_verified_results(self, target):
        coordinator = None
        b_requests = []

        def on_request(count, request):
            if "b" in sent_params(request):
                b_requests.append(count)
                if len(b_requests) == 2:
                    asyncio.get_running_loop().call_later(0.02, coordinator.stop)

        transport = FakeTransport(active_handler("a", "b"), on_request=on_request,
                                  delay=lambda params: 0.2 if "b" in params else 0)
        coordinator = make_coordinator(transport, target, initial_group_size=1)

        report = await asyncio.wait_for(coordinator.run(GuessMethod.GET, ["a", "b"]), timeout=5)

        assert report.completion is Completion.CANCELLED
        assert report.confirmed == ["a", "b"]
        assert report.names == ["a"]
