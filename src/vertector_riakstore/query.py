"""
Compile condition trees into Riak Search (Solr) query strings.

Fields are addressed the way the codec names them in the search index
(``address_map.city_register:``). Values go through one of three escapes:

- range bounds: backslash before every Solr reserved character
- literals: wrapped in double quotes, ``"`` and ``\\`` backslash-escaped
- like patterns: ``%`` becomes ``*``, only whitespace and ``\\`` escaped

A node compiled in raw mode skips both the range escape and the quoting.
``like``, ``null`` and ``not_null`` clauses build pre-escaped values and are
compiled raw so they are not escaped twice.
"""

import re
from typing import Any

from vertector_riakstore.conditions import And, Compare, Eq, Expr, IsNotNull, IsNull, Not, Or, normalize
from vertector_riakstore.datatypes import NIL, to_text
from vertector_riakstore.exceptions import StoreValidationError
from vertector_riakstore.fields import build_key

MATCH_ALL = "*:*"

# Matches any indexed value; used to test for field presence
ANY_VALUE = "[* TO *]"

_RANGE_RESERVED = re.compile(r'[+\-&|!(){}\[\]^"~*?:\\]')
_QUOTE_RESERVED = re.compile(r'["\\]')
_LIKE_RESERVED = re.compile(r"[\s\\]")


def escape(value: Any) -> str:
    """Backslash-escape Solr reserved characters for a range bound."""
    return _RANGE_RESERVED.sub(r"\\\g<0>", to_text(value))


def quote(value: Any) -> str:
    """Quoted Solr literal."""
    return '"' + _QUOTE_RESERVED.sub(r"\\\g<0>", to_text(value)) + '"'


def like_to_wildcard(value: Any) -> str:
    """
    Translate a SQL-style like pattern into a Solr wildcard term.

    Example:
        >>> like_to_wildcard("jo%n smith")
        'jo*n\\\\ smith'
    """
    return _LIKE_RESERVED.sub(r"\\\g<0>", to_text(value).replace("%", "*"))


def build_query(conditions: Any) -> str:
    """
    Compile conditions into a Riak Search query string.

    Args:
        conditions: A condition node, a list (implicit AND) or tuple
            shorthand accepted by ``conditions.normalize``

    Returns:
        Solr query text; ``*:*`` for an empty condition list

    Example:
        >>> build_query([("age", "<", 30), ("name", "Ann")])
        '(age_register:{* TO 30} AND name_register:"Ann")'
    """
    return _compile(normalize(conditions), raw=False)


def _compile(expr: Expr, raw: bool) -> str:
    if isinstance(expr, And):
        if not expr.exprs:
            return MATCH_ALL
        return "(" + " AND ".join(_compile(e, raw) for e in expr.exprs) + ")"

    if isinstance(expr, Or):
        if not expr.exprs:
            raise StoreValidationError("OR needs at least one condition", field="conditions", value=expr)
        return "(" + " OR ".join(_compile(e, raw) for e in expr.exprs) + ")"

    if isinstance(expr, Not):
        return "(NOT " + _compile(expr.expr, raw) + ")"

    if isinstance(expr, Eq):
        return _clause(expr.field, to_text(expr.value) if raw else quote(expr.value))

    if isinstance(expr, IsNull):
        null = Or((Eq(expr.field, NIL), Not(Eq(expr.field, ANY_VALUE))))
        return _compile(null, raw=True)

    if isinstance(expr, IsNotNull):
        not_null = And((Eq(expr.field, ANY_VALUE), Compare(expr.field, "!=", NIL)))
        return _compile(not_null, raw=True)

    if isinstance(expr, Compare):
        return _compile_compare(expr, raw)

    raise TypeError(f"not a condition node: {expr!r}")


def _compile_compare(expr: Compare, raw: bool) -> str:
    op = expr.op

    if op == "==":
        return _compile(Eq(expr.field, expr.value), raw)

    if op == "!=":
        value = to_text(expr.value) if raw else quote(expr.value)
        return _clause(expr.field, value, negate=True)

    if op == "like":
        return _clause(expr.field, like_to_wildcard(expr.value))

    bound = to_text(expr.value) if raw else escape(expr.value)
    if op == "<":
        return _clause(expr.field, "{* TO " + bound + "}")
    if op == "<=":
        return _clause(expr.field, "[* TO " + bound + "]")
    if op == ">":
        return _clause(expr.field, "{" + bound + " TO *}")
    # >=
    return _clause(expr.field, "[" + bound + " TO *]")


def _clause(field: str, value: str, negate: bool = False) -> str:
    return build_key(field, negate=negate) + value
