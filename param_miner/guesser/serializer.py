"""
Encoding of candidate parameters for each submission method.
"""

import json
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from typing import Callable, Dict, Mapping, Optional
from urllib.parse import urlencode

from .models import GuessMethod

XML_ROOT = "root"


@dataclass(frozen=True)
class SerializedParams:
    """Where the encoded parameters go and what they look like."""
    location: str  # "query" or "body"
    content: str
    content_type: Optional[str] = None


def encode_query(params: Mapping[str, str]) -> SerializedParams:
    return SerializedParams("query", urlencode(list(params.items())))


def encode_form(params: Mapping[str, str]) -> SerializedParams:
    return SerializedParams(
        "body", urlencode(list(params.items())), "application/x-www-form-urlencoded"
    )


def encode_xml(params: Mapping[str, str]) -> SerializedParams:
    root = ET.Element(XML_ROOT)
    for name, value in params.items():
        ET.SubElement(root, name).text = value
    content = '<?xml version="1.0" encoding="UTF-8"?>' + ET.tostring(root, encoding="unicode")
    return SerializedParams("body", content, "application/xml")


def encode_json(params: Mapping[str, str]) -> SerializedParams:
    return SerializedParams("body", json.dumps(dict(params)), "application/json")


_ENCODERS: Dict[GuessMethod, Callable[[Mapping[str, str]], SerializedParams]] = {
    GuessMethod.GET: encode_query,
    GuessMethod.POST: encode_form,
    GuessMethod.XML: encode_xml,
    GuessMethod.JSON: encode_json,
}


def serialize(method: GuessMethod, params: Mapping[str, str]) -> SerializedParams:
    """
    Encode ``params`` for ``method``.

    Args:
        method: Submission method
        params: Parameter names mapped to their probe values

    Returns:
        The encoded parameters and where to put them
    """
    try:
        encoder = _ENCODERS[method]
    except KeyError:
        raise ValueError(f"Unsupported guess method: {method!r}") from None
    return encoder(params)
