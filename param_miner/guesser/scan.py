"""
Scan of one target: every enabled submission method, run concurrently.
"""

import asyncio
from typing import Dict, Optional, Sequence

from ..core.config import Config
from ..core.exceptions import BaselineUnavailable
from ..core.http_client import HTTPTransport, create_transport
from ..core.logger import get_scan_logger
from ..core.worker_pool import WorkerPool
from .coordinator import GuessCoordinator
from .models import Completion, GuessMethod, GuessTarget, MethodReport, ScanReport
from .wordlist import WordlistManager


class GuesserScan:
    """
    Runs the guess coordinator for each method enabled in the configuration.

    The methods share one worker pool and one transport. A method whose
    baseline cannot be obtained is reported as aborted; the others go on.
    """

    def __init__(
            self,
            target: GuessTarget,
            config: Config,
            transport: Optional[HTTPTransport] = None,
            wordlist: Optional[Sequence[str]] = None,
            cookies: Optional[Dict[str, str]] = None
    ):
        self.target = target
        self.config = config
        self.transport = transport
        self.wordlist = wordlist
        self.cookies = cookies
        self.pool: Optional[WorkerPool] = None
        self.coordinator: Optional[GuessCoordinator] = None
        self._stopped = False
        self.logger = get_scan_logger(target.url)

    @property
    def methods(self):
        return [GuessMethod(name) for name in self.config.guesser.enabled_methods()]

    def stop(self) -> None:
        """Cancel the scan; ``run`` returns the partial report."""
        self._stopped = True
        if self.coordinator:
            self.coordinator.stop()

    def get_progress(self) -> Dict[str, int]:
        stats = self.pool.get_pool_stats() if self.pool else {}
        return {
            'completed_probes': stats.get('completed_tasks', 0),
            'active_probes': stats.get('active_tasks', 0),
            'queued_probes': stats.get('queued_tasks', 0),
        }

    async def run(self) -> ScanReport:
        """Run every enabled method and collect the reports."""
        report = ScanReport(target_url=self.target.url)
        methods = self.methods
        if not methods:
            self.logger.warning("No guess method enabled, nothing to do")
            return report

        wordlist = self.wordlist
        if wordlist is None:
            wordlist = WordlistManager(self.config.guesser).get_wordlist()
        self.logger.info(
            f"Scanning {self.target.url} with {', '.join(m.value for m in methods)} "
            f"({len(wordlist)} candidate(s))"
        )

        if self.transport is not None:
            report.add(await self._run_methods(self.transport, methods, wordlist))
        else:
            async with create_transport(self.config, cookies=self.cookies) as transport:
                report.add(await self._run_methods(transport, methods, wordlist))

        self.logger.info(
            f"Scan finished: {len(report.results)} parameter(s) found"
            + (", stopped early" if report.stopped_early else "")
        )
        return report

    async def _run_methods(self, transport: HTTPTransport, methods, wordlist):
        self.pool = WorkerPool(self.config.scanning.max_concurrent_requests)
        self.coordinator = GuessCoordinator(transport, self.target, self.pool, self.config.guesser)
        if self._stopped:
            self.coordinator.stop()
        try:
            return await asyncio.gather(*(self._run_method(m, wordlist) for m in methods))
        finally:
            await self.pool.shutdown()

    async def _run_method(self, method: GuessMethod, wordlist) -> MethodReport:
        try:
            return await self.coordinator.run(method, wordlist)
        except BaselineUnavailable as e:
            self.logger.error(f"{method.value}: {e}")
            return MethodReport(method=method, completion=Completion.ABORTED, error=e)
