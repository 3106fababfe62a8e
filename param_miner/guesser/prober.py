"""
Single-probe execution and the retry policy applied to probe outcomes.
"""

import logging
from typing import Dict, Mapping, Optional
from urllib.parse import urlsplit, urlunsplit

from ..core.exceptions import TransportError
from ..core.http_client import HTTPTransport, ProbeRequest
from .fingerprint import fingerprint, reasons
from .models import (
    CandidateGroup, GuessMethod, GuessMode, GuessTarget, ProbeOutcome, ProbeStatus,
    ResponseSignature,
)
from .serializer import serialize

logger = logging.getLogger(__name__)


class CandidateProber:
    """
    Sends one candidate group to the target and compares the answer to the baseline.

    Holds only read-only state, so any number of probes may run concurrently.
    """

    def __init__(self, transport: HTTPTransport, target: GuessTarget,
                 control_param: str = "zap", control_value: str = "123"):
        self.transport = transport
        self.target = target
        self.control_param = control_param
        self.control_value = control_value

    def build_request(self, method: GuessMethod, params: Mapping[str, str]) -> ProbeRequest:
        """Build the request carrying ``params`` for ``method``."""
        serialized = serialize(method, params)
        headers: Dict[str, str] = dict(self.target.headers)
        scheme, netloc, path, query, _ = urlsplit(self.target.url)

        if serialized.location == "query":
            query = f"{query}&{serialized.content}" if query else serialized.content
            content = None
        else:
            content = serialized.content
            headers["Content-Type"] = serialized.content_type

        return ProbeRequest(
            method=method.http_method,
            url=urlunsplit((scheme, netloc, path, query, "")),
            headers=headers,
            content=content,
        )

    def _with_control(self, group: Optional[CandidateGroup] = None) -> Dict[str, str]:
        params = {self.control_param: self.control_value}
        if group is not None:
            params.update(group.as_dict())
        return params

    async def request_baseline(self, method: GuessMethod) -> ResponseSignature:
        """
        Send the control parameter alone.

        Raises:
            TransportError: if no response was obtained
        """
        params = self._with_control()
        response = await self.transport.send(self.build_request(method, params))
        return fingerprint(response, params)

    async def probe(self, baseline: ResponseSignature, method: GuessMethod,
                    group: CandidateGroup, mode: GuessMode = GuessMode.BRUTEFORCE) -> ProbeOutcome:
        """
        Probe ``group`` and classify the result.

        Args:
            baseline: Signature of the control request
            method: Submission method
            group: Candidates to send along with the control parameter
            mode: Bruteforce (narrowing) or verification probe

        Returns:
            ``OK`` with a changed/unchanged verdict, or ``RETRY`` on transport failure
        """
        params = self._with_control(group)
        try:
            response = await self.transport.send(self.build_request(method, params))
        except TransportError as e:
            logger.debug(f"{method.value} {mode.value} {group}: {e}")
            return ProbeOutcome(group=group, status=ProbeStatus.RETRY, mode=mode, error=e)

        signature = fingerprint(response, params)
        found = reasons(baseline, signature)
        if found:
            logger.debug(f"{method.value} {mode.value} {group} changed: {'; '.join(found)}")
        return ProbeOutcome(
            group=group,
            status=ProbeStatus.OK,
            changed=bool(found),
            reasons=tuple(found),
            signature=signature,
            mode=mode,
        )


class RetryPolicy:
    """
    Run-wide retry bookkeeping.

    Each group gets ``retry_ceiling`` attempts per generation. Outcomes are
    fed in group order at the generation barrier; the ``kill_threshold``-th
    consecutive ``RETRY`` across the whole run is promoted to ``KILL``.
    """

    def __init__(self, retry_ceiling: int = 3, kill_threshold: int = 10):
        if retry_ceiling < 1 or kill_threshold < 1:
            raise ValueError("retry_ceiling and kill_threshold must be at least 1")
        self.retry_ceiling = retry_ceiling
        self.kill_threshold = kill_threshold
        self.consecutive_failures = 0
        self.total_failures = 0

    def record(self, outcome: ProbeOutcome) -> ProbeOutcome:
        if outcome.status is ProbeStatus.OK:
            self.consecutive_failures = 0
            return outcome
        if outcome.status is ProbeStatus.RETRY:
            self.consecutive_failures += 1
            self.total_failures += 1
            if self.consecutive_failures >= self.kill_threshold:
                return outcome.with_status(ProbeStatus.KILL)
            return outcome
        if outcome.status is ProbeStatus.KILL:
            return outcome
        raise ValueError(f"Unknown probe status: {outcome.status!r}")

    def can_retry(self, attempts: int) -> bool:
        return attempts < self.retry_ceiling
