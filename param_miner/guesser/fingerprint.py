"""
Response fingerprinting for differential detection.

A signature keeps the status code, a coarse length class, the header names,
the redirect target, line and word counts, a hash of the normalized body
and whether any value we sent came back. Normalization removes what we
echoed and masks common noise (timestamps, UUIDs, long hex tokens, epoch
numbers) so those alone never make two responses differ.
"""

import hashlib
import html
import re
from dataclasses import replace
from typing import List, Mapping, Optional, Sequence
from urllib.parse import unquote

from ..core.http_client import ProbeResponse
from .models import ResponseSignature

LENGTH_BUCKET = 32

DIMENSIONS = (
    "status_code",
    "location",
    "header_names",
    "length_class",
    "line_count",
    "word_count",
    "body_hash",
    "reflected",
)

# Headers whose presence varies from one request to the next
VOLATILE_HEADERS = frozenset({
    "date", "age", "expires", "last-modified", "etag", "content-length",
    "transfer-encoding", "connection", "keep-alive", "x-request-id",
    "x-runtime", "x-amzn-trace-id", "cf-ray", "server-timing",
})

NOISE_PATTERNS = [
    (re.compile(r"\d{4}-\d{2}-\d{2}[T ]\d{2}:\d{2}(?::\d{2}(?:\.\d+)?)?(?:Z|[+-]\d{2}:?\d{2})?"), "<datetime>"),
    (re.compile(r"(?:Mon|Tue|Wed|Thu|Fri|Sat|Sun), \d{2} \w{3} \d{4} \d{2}:\d{2}:\d{2} GMT"), "<datetime>"),
    (re.compile(r"\b\d{1,2}:\d{2}:\d{2}\b"), "<time>"),
    (re.compile(r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}\b"), "<uuid>"),
    (re.compile(r"\b[0-9a-fA-F]{16,}\b"), "<hex>"),
    (re.compile(r"\b1\d{9}(?:\d{3})?\b"), "<epoch>"),
]

_WORD = re.compile(r"\w+")


def _strip_sent(text: str, sent: Mapping[str, str]) -> str:
    # Echoes often come back HTML-escaped or percent-encoded
    text = unquote(html.unescape(text))
    for name, value in sent.items():
        n, v = re.escape(name), re.escape(value)
        text = re.sub(r"<%s>%s</%s>" % (n, v, n), "", text)
        text = re.sub(r"[?&]?[\"']?%s[\"']?\s*[:=]\s*[\"']?%s[\"']?,?\s*" % (n, v), "", text)
    for value in sorted(sent.values(), key=len, reverse=True):
        text = text.replace(value, "")
    return text


def normalize(body: str, sent: Optional[Mapping[str, str]] = None) -> str:
    """Remove echoed parameters and mask volatile tokens."""
    if sent:
        body = _strip_sent(body, sent)
    for pattern, placeholder in NOISE_PATTERNS:
        body = pattern.sub(placeholder, body)
    return body


def fingerprint(response: ProbeResponse, sent: Optional[Mapping[str, str]] = None) -> ResponseSignature:
    """
    Reduce a response to a signature.

    Args:
        response: The response to reduce
        sent: Parameters sent with the request, used to detect and remove echoes

    Returns:
        The response signature
    """
    sent = sent or {}
    body = normalize(response.body, sent)
    location = normalize(response.header("location"), sent)
    return ResponseSignature(
        status_code=response.status_code,
        length_class=len(body) // LENGTH_BUCKET,
        header_names=frozenset(
            name.lower() for name in response.headers if name.lower() not in VOLATILE_HEADERS
        ),
        location=location,
        line_count=body.count("\n") + 1 if body else 0,
        word_count=len(_WORD.findall(body)),
        body_hash=hashlib.md5(body.encode("utf-8", "replace")).hexdigest()[:16],
        reflected=any(value and value in response.body for value in sent.values()),
    )


def reasons(baseline: ResponseSignature, candidate: ResponseSignature) -> List[str]:
    """Describe every stable dimension in which ``candidate`` departs from ``baseline``."""
    ignored = baseline.unstable | candidate.unstable
    found = []
    for dimension in DIMENSIONS:
        if dimension in ignored:
            continue
        before = getattr(baseline, dimension)
        after = getattr(candidate, dimension)
        if before == after:
            continue
        if dimension == "header_names":
            added = sorted(after - before)
            removed = sorted(before - after)
            found.append(f"headers changed (added: {added}, removed: {removed})")
        elif dimension == "body_hash":
            found.append("body content changed")
        elif dimension == "reflected":
            found.append("probe value reflected in body" if after else "reflection disappeared")
        else:
            found.append(f"{dimension.replace('_', ' ')} changed: {before!r} -> {after!r}")
    return found


def differs(a: ResponseSignature, b: ResponseSignature) -> bool:
    """True if the two signatures differ in any stable dimension."""
    return bool(reasons(a, b))


def calibrate(samples: Sequence[ResponseSignature]) -> ResponseSignature:
    """
    Merge several baseline samples into one baseline.

    Dimensions that are not identical across all samples are marked unstable
    so they are left out of every later comparison.
    """
    if not samples:
        raise ValueError("at least one baseline sample is required")
    first = samples[0]
    unstable = {
        dimension for dimension in DIMENSIONS
        if any(getattr(sample, dimension) != getattr(first, dimension) for sample in samples[1:])
    }
    return replace(first, unstable=frozenset(unstable))
