"""
Data model of the parameter guessing engine.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, FrozenSet, Iterable, Iterator, List, Mapping, Optional, Set, Tuple

from ..core.exceptions import ExhaustedRetries, ParamMinerError


class GuessMethod(Enum):
    """How candidate parameters are submitted to the target."""
    GET = "GET"
    POST = "POST"
    XML = "XML"
    JSON = "JSON"

    @property
    def http_method(self) -> str:
        return "GET" if self is GuessMethod.GET else "POST"


class GuessMode(Enum):
    """Why a probe is sent."""
    BRUTEFORCE = "bruteforce"
    VERIFY = "verify"


class ProbeStatus(Enum):
    """Transport-level result of a probe."""
    OK = "ok"
    RETRY = "retry"
    KILL = "kill"


class Completion(Enum):
    """How a method run ended."""
    COMPLETE = "complete"
    KILLED = "killed"
    CANCELLED = "cancelled"
    ABORTED = "aborted"


@dataclass(frozen=True)
class GuessTarget:
    """The endpoint being mined and the headers every probe carries."""
    url: str
    headers: Tuple[Tuple[str, str], ...] = ()

    @classmethod
    def create(cls, url: str, headers: Optional[Mapping[str, str]] = None) -> "GuessTarget":
        return cls(url=url, headers=tuple((headers or {}).items()))


@dataclass(frozen=True)
class CandidateGroup:
    """An ordered, immutable batch of parameter name/probe value pairs."""
    params: Tuple[Tuple[str, str], ...]

    @classmethod
    def from_mapping(cls, params: Mapping[str, str]) -> "CandidateGroup":
        return cls(tuple(params.items()))

    @property
    def names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.params)

    def as_dict(self) -> Dict[str, str]:
        return dict(self.params)

    def __len__(self) -> int:
        return len(self.params)

    def __iter__(self) -> Iterator[Tuple[str, str]]:
        return iter(self.params)

    def __str__(self) -> str:
        return "{" + ", ".join(self.names) + "}"


@dataclass(frozen=True)
class ResponseSignature:
    """Comparable reduction of a response; see ``fingerprint``."""
    status_code: int
    length_class: int
    header_names: FrozenSet[str]
    location: str
    line_count: int
    word_count: int
    body_hash: str
    reflected: bool
    unstable: FrozenSet[str] = frozenset()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'status_code': self.status_code,
            'length_class': self.length_class,
            'header_names': sorted(self.header_names),
            'location': self.location,
            'line_count': self.line_count,
            'word_count': self.word_count,
            'body_hash': self.body_hash,
            'reflected': self.reflected,
            'unstable': sorted(self.unstable),
        }


@dataclass(frozen=True)
class ProbeOutcome:
    """Result of one prober execution."""
    group: CandidateGroup
    status: ProbeStatus
    changed: bool = False
    reasons: Tuple[str, ...] = ()
    signature: Optional[ResponseSignature] = None
    mode: GuessMode = GuessMode.BRUTEFORCE
    error: Optional[BaseException] = field(default=None, compare=False)

    def with_status(self, status: ProbeStatus) -> "ProbeOutcome":
        return replace(self, status=status)


@dataclass(frozen=True)
class ParamGuessResult:
    """A verified parameter and the evidence that confirmed it."""
    name: str
    method: GuessMethod
    value: str
    reasons: Tuple[str, ...]
    signature: ResponseSignature

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'method': self.method.value,
            'value': self.value,
            'reasons': list(self.reasons),
            'signature': self.signature.to_dict(),
        }


@dataclass
class MethodReport:
    """Everything a single method run produced, including how it ended."""
    method: GuessMethod
    results: Set[ParamGuessResult] = field(default_factory=set)
    completion: Completion = Completion.COMPLETE
    generations: int = 0
    requests_sent: int = 0
    confirmed: List[str] = field(default_factory=list)
    gaps: List[ExhaustedRetries] = field(default_factory=list)
    error: Optional[ParamMinerError] = None

    @property
    def stopped_early(self) -> bool:
        return self.completion is not Completion.COMPLETE

    @property
    def names(self) -> List[str]:
        return sorted(r.name for r in self.results)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'method': self.method.value,
            'completion': self.completion.value,
            'generations': self.generations,
            'requests_sent': self.requests_sent,
            'confirmed': list(self.confirmed),
            'results': [r.to_dict() for r in sorted(self.results, key=lambda r: r.name)],
            'gaps': [list(gap.names) for gap in self.gaps],
            'error': str(self.error) if self.error else None,
        }


@dataclass
class ScanReport:
    """Per-method reports for one target."""
    target_url: str
    reports: Dict[GuessMethod, MethodReport] = field(default_factory=dict)

    @property
    def results(self) -> Set[ParamGuessResult]:
        found: Set[ParamGuessResult] = set()
        for report in self.reports.values():
            found.update(report.results)
        return found

    @property
    def stopped_early(self) -> bool:
        return any(r.stopped_early for r in self.reports.values())

    def add(self, reports: Iterable[MethodReport]) -> None:
        for report in reports:
            self.reports[report.method] = report

    def to_dict(self) -> Dict[str, Any]:
        return {
            'target_url': self.target_url,
            'stopped_early': self.stopped_early,
            'methods': [r.to_dict() for r in self.reports.values()],
        }
