"""Build the two-clause CPE search query from concatenated evidence text."""

from __future__ import annotations

import re
from collections.abc import Iterable

from scasentinel.data.query import escape

WEIGHTING_BOOST = "^5"

_RX_CLEANSE = re.compile(r"[^A-Za-z0-9 ._-]")
_RX_NON_ALPHA = re.compile(r"[^A-Za-z]*")


def cleanse_text(text: str) -> str:
    """Replace characters outside ``[A-Za-z0-9 ._-]`` with spaces."""
    return _RX_CLEANSE.sub(" ", text)


def equals_ignore_case_and_non_alpha(left: str | None, right: str | None) -> bool:
    if left is None or right is None:
        return False
    return _RX_NON_ALPHA.sub("", left).lower() == _RX_NON_ALPHA.sub("", right).lower()


def append_weighted_search(
    parts: list[str], field: str, search_text: str, weighting: Iterable[str] | None
) -> bool:
    """Append ``" field:( ... ) "`` to *parts*; False if the text cleans to nothing."""
    parts.append(f" {field}:( ")
    clean = cleanse_text(search_text)
    if not clean.strip():
        return False

    weighted_entries = sorted(weighting or ())
    if not weighted_entries:
        parts.append(escape(clean))
    else:
        for word in clean.split():
            term = None
            for weighted in weighted_entries:
                weighted_clean = cleanse_text(weighted)
                if equals_ignore_case_and_non_alpha(word, weighted_clean):
                    term = escape(word) + WEIGHTING_BOOST
                    if word.lower() != weighted_clean.lower():
                        term += " " + escape(weighted_clean) + WEIGHTING_BOOST
            if term is None:
                term = escape(word)
            parts.append(" " + term)
    parts.append(" ) ")
    return True


def build_search(
    vendor: str,
    product: str,
    vendor_weighting: Iterable[str] | None = None,
    product_weighting: Iterable[str] | None = None,
) -> str | None:
    """Return the index query, or None when either side has no usable text.

    >>> build_search("apache software foundation", "struts 2 core").strip()
    'product:( struts 2 core )  AND  vendor:( apache software foundation )'
    """
    parts: list[str] = []
    if not append_weighted_search(parts, "product", product, product_weighting):
        return None
    parts.append(" AND ")
    if not append_weighted_search(parts, "vendor", vendor, vendor_weighting):
        return None
    return "".join(parts)
