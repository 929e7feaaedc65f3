"""CoreAPI path query fragments: ``/search:(k=v,...)`` and ``/with:(rel,...)``."""
from __future__ import annotations
from typing import Mapping, Optional, Sequence
from urllib.parse import quote

# Characters left unescaped by JavaScript's encodeURIComponent
_URI_COMPONENT_SAFE = "-_.!~*'()"


def encode_component(value) -> str:
    """Percent-encode a single path component the same way the CoreAPI expects."""
    return quote(str(value), safe=_URI_COMPONENT_SAFE)


def construct_search(terms: Optional[Mapping[str, object]]) -> str:
    """Build a ``/search:(...)`` fragment.

    Fields whose value is None or an empty string are omitted.

    >>> construct_search({"email": "a@b.com", "username": ""})
    '/search:(email=a%40b.com)'
    """
    if not terms:
        return ""

    searches = [
        f"{key}={encode_component(value)}"
        for key, value in terms.items()
        if value is not None and value != ""
    ]
    return f"/search:({','.join(searches)})"


def construct_with(relations: Optional[Sequence[str]]) -> str:
    """Build a ``/with:(...)`` fragment listing relationships to include.

    >>> construct_with(["subscriptions", "country"])
    '/with:(subscriptions,country)'
    """
    if not relations:
        return ""

    return "/with:(" + ",".join(encode_component(rel) for rel in relations) + ")"
