"""Search query syntax — escaping and parsing of ``field:( term^boost ... )`` clauses.

The identification engine writes queries such as::

    product:( struts^5 struts2^5 core )  AND  vendor:( apache )

and the in-memory index reads them back.  Only the subset the engine emits
is understood: parenthesised field clauses joined by ``AND``, whitespace
separated terms, an optional ``^boost`` suffix and backslash escapes.
"""

from __future__ import annotations

from dataclasses import dataclass

SPECIAL_CHARACTERS = frozenset('+-&|!(){}[]^"~*?:\\/')


def escape(text: str) -> str:
    """Backslash-escape query special characters."""
    return "".join("\\" + ch if ch in SPECIAL_CHARACTERS else ch for ch in text)


def unescape(text: str) -> str:
    out: list[str] = []
    chars = iter(text)
    for ch in chars:
        if ch == "\\":
            out.append(next(chars, ""))
        else:
            out.append(ch)
    return "".join(out)


@dataclass(frozen=True)
class QueryTerm:
    text: str
    boost: float = 1.0


class QuerySyntaxError(ValueError):
    """The query does not follow the ``field:( terms )`` syntax."""


def _split_boost(raw: str) -> QueryTerm:
    # A caret preceded by a backslash is part of the term.
    idx = len(raw) - 1
    while idx >= 0:
        if raw[idx] == "^" and (idx == 0 or raw[idx - 1] != "\\"):
            try:
                boost = float(raw[idx + 1:])
            except ValueError:
                raise QuerySyntaxError(f"bad boost in term {raw!r}") from None
            return QueryTerm(unescape(raw[:idx]), boost)
        idx -= 1
    return QueryTerm(unescape(raw))


def parse_query(query: str) -> dict[str, list[QueryTerm]]:
    """Parse a query into ``{field: [terms]}``.

    >>> parse_query("product:( struts^5 core )  AND  vendor:( apache )")["product"]
    [QueryTerm(text='struts', boost=5.0), QueryTerm(text='core', boost=1.0)]
    """
    clauses: dict[str, list[QueryTerm]] = {}
    pos, length = 0, len(query)
    while pos < length:
        while pos < length and query[pos].isspace():
            pos += 1
        if pos >= length:
            break
        if query.startswith("AND", pos) and (pos + 3 == length or query[pos + 3].isspace()):
            pos += 3
            continue
        colon = query.find(":(", pos)
        if colon < 0:
            raise QuerySyntaxError(f"expected 'field:(' at offset {pos} in {query!r}")
        field_name = query[pos:colon].strip()
        if not field_name or any(ch.isspace() for ch in field_name):
            raise QuerySyntaxError(f"bad field name {field_name!r}")
        pos = colon + 2

        terms: list[QueryTerm] = []
        current: list[str] = []
        while True:
            if pos >= length:
                raise QuerySyntaxError(f"unterminated clause for field {field_name!r}")
            ch = query[pos]
            if ch == "\\" and pos + 1 < length:
                current.append(query[pos:pos + 2])
                pos += 2
                continue
            if ch == ")" or ch.isspace():
                if current:
                    terms.append(_split_boost("".join(current)))
                    current = []
                pos += 1
                if ch == ")":
                    break
                continue
            current.append(ch)
            pos += 1
        clauses.setdefault(field_name, []).extend(terms)
    return clauses
