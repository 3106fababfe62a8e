"""
Guess coordinator: a complete discovery run for one submission method.

1. Baseline: the control parameter alone.
2. Narrowing: every live candidate group is probed on the worker pool; the
   coordinator waits for the whole generation, then prunes unchanged
   groups, halves changed ones and keeps changed single parameters as
   confirmed candidates. Repeats until no group is left.
3. Verification: every confirmed candidate is probed once more and only
   reproducible changes are reported.
"""

import asyncio
import logging
from typing import Dict, Iterable, List, Optional, Set, Tuple

from ..core.config import GuesserConfig
from ..core.exceptions import BaselineUnavailable, ExhaustedRetries, KillThreshold, TransportError
from ..core.http_client import HTTPTransport
from ..core.worker_pool import WorkerPool
from .fingerprint import calibrate
from .models import (
    CandidateGroup, Completion, GuessMethod, GuessMode, GuessTarget, MethodReport,
    ParamGuessResult, ProbeOutcome, ProbeStatus, ResponseSignature,
)
from .partitioner import partition, populate, split
from .prober import CandidateProber, RetryPolicy

logger = logging.getLogger(__name__)


class RunStopped(Exception):
    """Internal signal: the current run ended before its natural end."""

    def __init__(self, outcomes: Iterable[ProbeOutcome] = ()):
        super().__init__()
        self.outcomes = list(outcomes)


class GuessCoordinator:
    """
    Orchestrates parameter discovery against one target.

    One coordinator may run several methods concurrently; they share the
    worker pool and the transport and nothing else.
    """

    def __init__(
            self,
            transport: HTTPTransport,
            target: GuessTarget,
            pool: WorkerPool,
            config: Optional[GuesserConfig] = None,
            prober: Optional[CandidateProber] = None
    ):
        self.config = config or GuesserConfig()
        self.target = target
        self.pool = pool
        self.prober = prober or CandidateProber(
            transport, target, self.config.control_param, self.config.control_value
        )
        self._tasks: Set[asyncio.Task] = set()
        self._stopped = False

    @property
    def stopped(self) -> bool:
        return self._stopped

    def stop(self) -> None:
        """Cancel every queued and in-flight probe; running calls return partial results."""
        if not self._stopped:
            logger.info(f"Stopping guessing on {self.target.url}")
        self._stopped = True
        WorkerPool.cancel(list(self._tasks))

    async def discover(self, method: GuessMethod, wordlist: Iterable[str]) -> Set[ParamGuessResult]:
        """
        Discover the parameters ``method`` accepts.

        Use ``run`` to also learn whether the run completed.

        Raises:
            BaselineUnavailable: if the control request keeps failing
        """
        report = await self.run(method, wordlist)
        return report.results

    async def run(self, method: GuessMethod, wordlist: Iterable[str]) -> MethodReport:
        """
        Full discovery run for one method.

        Args:
            method: Submission method
            wordlist: Candidate parameter names

        Returns:
            Verified results together with how the run ended

        Raises:
            BaselineUnavailable: if the control request keeps failing
        """
        report = MethodReport(method=method)
        policy = RetryPolicy(self.config.retry_ceiling, self.config.kill_threshold)
        words = self._prepare_wordlist(wordlist)
        logger.info(f"{method.value}: guessing {len(words)} parameter(s) on {self.target.url}")

        try:
            baseline = await self._establish_baseline(method, report)
            confirmed = await self._narrow(baseline, method, words, policy, report)
            await self._verify(baseline, method, confirmed, policy, report)
        except RunStopped:
            pass

        logger.info(
            f"{method.value}: {report.completion.value} after {report.generations} generation(s), "
            f"{report.requests_sent} request(s), found {report.names or 'nothing'}"
        )
        return report

    def _prepare_wordlist(self, wordlist: Iterable[str]) -> Tuple[str, ...]:
        words = dict.fromkeys(w for w in wordlist if w)
        if self.config.control_param in words:
            logger.warning(
                f"Dropping '{self.config.control_param}' from the wordlist, it is the control parameter"
            )
            del words[self.config.control_param]
        return tuple(words)

    def _submit(self, coro) -> asyncio.Task:
        task = self.pool.submit(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def _check_stopped(self, report: MethodReport) -> None:
        if self._stopped:
            report.completion = Completion.CANCELLED
            raise RunStopped()

    async def _establish_baseline(self, method: GuessMethod, report: MethodReport) -> ResponseSignature:
        samples: List[ResponseSignature] = []
        attempts = 0
        last_error: Optional[BaseException] = None

        while len(samples) < self.config.baseline_samples:
            self._check_stopped(report)
            if attempts >= self.config.retry_ceiling:
                logger.error(f"{method.value}: baseline unavailable for {self.target.url}")
                report.completion = Completion.ABORTED
                raise BaselineUnavailable(method.value, attempts, last_error)

            [result] = await self.pool.wait_all([self._submit(self.prober.request_baseline(method))])
            report.requests_sent += 1
            if isinstance(result, asyncio.CancelledError):
                self._stopped = True
                self._check_stopped(report)
            if isinstance(result, TransportError):
                attempts += 1
                last_error = result
                logger.debug(f"{method.value}: baseline attempt {attempts} failed: {result}")
                continue
            if isinstance(result, BaseException):
                raise result
            samples.append(result)

        baseline = calibrate(samples)
        if baseline.unstable:
            logger.info(f"{method.value}: ignoring unstable response traits {sorted(baseline.unstable)}")
        return baseline

    async def _narrow(self, baseline: ResponseSignature, method: GuessMethod, words: Tuple[str, ...],
                      policy: RetryPolicy, report: MethodReport) -> List[CandidateGroup]:
        candidates = populate(words, reserved=[self.config.control_value])
        groups = partition(candidates, self.config.initial_group_size)
        confirmed: List[CandidateGroup] = []

        while groups:
            self._check_stopped(report)
            report.generations += 1
            outcomes = await self._run_generation(baseline, method, groups, GuessMode.BRUTEFORCE, policy, report)

            next_groups: List[CandidateGroup] = []
            for outcome in outcomes:
                if not outcome.changed:
                    continue
                if len(outcome.group) > 1:
                    next_groups.extend(split(outcome.group))
                else:
                    logger.info(f"{method.value}: isolated '{outcome.group.names[0]}' ({'; '.join(outcome.reasons)})")
                    confirmed.append(outcome.group)
                    report.confirmed.append(outcome.group.names[0])

            logger.info(
                f"{method.value}: generation {report.generations} probed {len(groups)} group(s), "
                f"{len(next_groups)} to narrow, {len(confirmed)} confirmed so far"
            )
            groups = next_groups

        return confirmed

    async def _verify(self, baseline: ResponseSignature, method: GuessMethod, confirmed: List[CandidateGroup],
                      policy: RetryPolicy, report: MethodReport) -> None:
        if not confirmed:
            return
        self._check_stopped(report)
        try:
            outcomes = await self._run_generation(baseline, method, confirmed, GuessMode.VERIFY, policy, report)
        except RunStopped as stop:
            # Keep what was verified before the stop
            self._record_verified(method, stop.outcomes, report)
            raise
        self._record_verified(method, outcomes, report)

    def _record_verified(self, method: GuessMethod, outcomes: Iterable[ProbeOutcome], report: MethodReport) -> None:
        for outcome in outcomes:
            if outcome.status is not ProbeStatus.OK:
                continue
            [(name, value)] = outcome.group.params
            if not outcome.changed:
                logger.info(f"{method.value}: '{name}' did not reproduce, discarded")
                continue
            report.results.add(ParamGuessResult(
                name=name,
                method=method,
                value=value,
                reasons=outcome.reasons,
                signature=outcome.signature,
            ))
            logger.info(f"{method.value}: found parameter '{name}'")

    async def _run_generation(self, baseline: ResponseSignature, method: GuessMethod,
                              groups: List[CandidateGroup], mode: GuessMode,
                              policy: RetryPolicy, report: MethodReport) -> List[ProbeOutcome]:
        """
        Probe every group, retrying transport failures, and wait for all of them.

        Outcomes come back in the order of ``groups`` whatever order the
        probes finished in. Groups that run out of attempts come back as
        unchanged and are recorded as coverage gaps.
        """
        final: Dict[CandidateGroup, ProbeOutcome] = {}
        attempts: Dict[CandidateGroup, int] = {group: 0 for group in groups}
        pending = list(groups)

        while pending:
            tasks = [self._submit(self.prober.probe(baseline, method, group, mode)) for group in pending]
            results = await self.pool.wait_all(tasks)
            if any(isinstance(r, asyncio.CancelledError) for r in results):
                self._stopped = True
            if self._stopped:
                report.completion = Completion.CANCELLED
                finished = [r for r in results if isinstance(r, ProbeOutcome) and r.status is ProbeStatus.OK]
                raise RunStopped(list(final.values()) + finished)

            retry: List[CandidateGroup] = []
            for group, result in zip(pending, results):
                if isinstance(result, BaseException):
                    raise result
                report.requests_sent += 1
                attempts[group] += 1
                outcome = policy.record(result)

                if outcome.status is ProbeStatus.OK:
                    final[group] = outcome
                elif outcome.status is ProbeStatus.RETRY:
                    if policy.can_retry(attempts[group]):
                        retry.append(group)
                    else:
                        gap = ExhaustedRetries(method.value, group.names, attempts[group], outcome.error)
                        logger.warning(f"{gap}; these parameters were not tested")
                        report.gaps.append(gap)
                        final[group] = outcome
                elif outcome.status is ProbeStatus.KILL:
                    report.error = KillThreshold(method.value, policy.consecutive_failures)
                    report.completion = Completion.KILLED
                    logger.error(str(report.error))
                    raise RunStopped(final.values())
                else:
                    raise ValueError(f"Unknown probe status: {outcome.status!r}")
            pending = retry

        return [final[group] for group in groups]
