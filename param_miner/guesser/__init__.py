"""
Hidden parameter guessing engine.

Finds the parameters an endpoint silently accepts by probing groups of
candidates, narrowing the groups that change the response down to single
parameters, and verifying each one with a fresh probe.
"""

from .coordinator import GuessCoordinator
from .models import (
    CandidateGroup, Completion, GuessMethod, GuessMode, GuessTarget, MethodReport,
    ParamGuessResult, ProbeOutcome, ProbeStatus, ResponseSignature, ScanReport,
)
from .prober import CandidateProber, RetryPolicy
from .scan import GuesserScan
from .wordlist import WordlistManager

__all__ = [
    'GuessCoordinator',
    'CandidateProber',
    'RetryPolicy',
    'GuesserScan',
    'WordlistManager',
    'CandidateGroup',
    'Completion',
    'GuessMethod',
    'GuessMode',
    'GuessTarget',
    'MethodReport',
    'ParamGuessResult',
    'ProbeOutcome',
    'ProbeStatus',
    'ResponseSignature',
    'ScanReport',
]
