"""
Condition expressions for find/delete queries.

Conditions are a small immutable tree. Callers may build nodes directly or
use tuple shorthand, which ``normalize`` turns into nodes:

    ("age", ">", 30)            -> Compare("age", ">", 30)
    ("name", "jo")              -> Eq("name", "jo")
    ("email", "null")           -> IsNull("email")
    ("email", "not_null")       -> IsNotNull("email")
    ("or", [c1, c2])            -> Or((c1, c2))
    ("not", c)                  -> Not(c)
    [c1, c2]                    -> And((c1, c2))
"""

from dataclasses import dataclass
from typing import Any, Union

from vertector_riakstore.exceptions import StoreValidationError

COMPARE_OPS = ("<", "<=", ">", ">=", "==", "!=", "like")

# Alternative spellings accepted in shorthand conditions
OP_ALIASES = {"=<": "<=", "/=": "!="}


@dataclass(frozen=True)
class And:
    exprs: tuple["Expr", ...]


@dataclass(frozen=True)
class Or:
    exprs: tuple["Expr", ...]


@dataclass(frozen=True)
class Not:
    expr: "Expr"


@dataclass(frozen=True)
class Compare:
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in COMPARE_OPS:
            raise StoreValidationError(f"Unknown operator {self.op!r}", field="op", value=self.op)


@dataclass(frozen=True)
class Eq:
    field: str
    value: Any


@dataclass(frozen=True)
class IsNull:
    field: str


@dataclass(frozen=True)
class IsNotNull:
    field: str


Expr = Union[And, Or, Not, Compare, Eq, IsNull, IsNotNull]

NODE_TYPES = (And, Or, Not, Compare, Eq, IsNull, IsNotNull)


def normalize(conditions: Any) -> Expr:
    """
    Turn a condition (node, list or tuple shorthand) into a node tree.

    A top-level list becomes an ``And``; an empty list becomes ``And(())``,
    which compiles to match-all.

    Raises:
        StoreValidationError: If the shorthand is not recognised
    """
    if isinstance(conditions, NODE_TYPES):
        if isinstance(conditions, (And, Or)):
            return type(conditions)(tuple(normalize(e) for e in conditions.exprs))
        if isinstance(conditions, Not):
            return Not(normalize(conditions.expr))
        return conditions

    if isinstance(conditions, list):
        return And(tuple(normalize(c) for c in conditions))

    if isinstance(conditions, tuple):
        if len(conditions) == 2:
            head, tail = conditions
            if head == "and" and isinstance(tail, list):
                return And(tuple(normalize(c) for c in tail))
            if head == "or" and isinstance(tail, list):
                return Or(tuple(normalize(c) for c in tail))
            if head == "not":
                return Not(normalize(tail))
            if tail == "null":
                return IsNull(_field_name(head))
            if tail == "not_null":
                return IsNotNull(_field_name(head))
            return Eq(_field_name(head), tail)
        if len(conditions) == 3:
            name, op, value = conditions
            return Compare(_field_name(name), OP_ALIASES.get(op, op), value)

    raise StoreValidationError(
        f"Unrecognised condition {conditions!r}",
        field="conditions",
        value=conditions,
    )


def id_lookup(expr: Expr, id_field: str) -> tuple[bool, Any]:
    """
    Detect a point lookup: conditions that are exactly ``id_field == X``.

    Returns:
        (True, X) for a point lookup, (False, None) otherwise
    """
    if isinstance(expr, And) and len(expr.exprs) == 1:
        expr = expr.exprs[0]
    if isinstance(expr, Eq) and expr.field == id_field:
        return True, expr.value
    if isinstance(expr, Compare) and expr.op == "==" and expr.field == id_field:
        return True, expr.value
    return False, None


def _field_name(name: Any) -> str:
    if not isinstance(name, str) or not name:
        raise StoreValidationError("Field name must be a non-empty string", field="field", value=name)
    return name
