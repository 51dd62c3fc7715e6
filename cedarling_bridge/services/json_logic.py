"""Evaluator for the JSON-logic subset used by policy conditions and principal rules."""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Sequence

_MISSING = object()


class JsonLogicError(ValueError):
    """Raised when a rule is malformed or uses an unsupported operator."""


class MissingVariableError(JsonLogicError):
    """Raised in strict mode when a rule reads a variable that is not present."""

    def __init__(self, path: str) -> None:
        super().__init__(f"attribute {path!r} does not exist")
        self.path = path


def truthy(value: Any) -> bool:
    if isinstance(value, (list, tuple)):
        return len(value) > 0
    return bool(value)


def resolve_var(data: Any, path: str, default: Any = _MISSING) -> Any:
    """Look up a dotted ``path`` in ``data``.

    Exact keys win over dotted traversal so names such as ``Jans::User`` or
    ``a.b`` stored as one key still resolve.
    """

    if path == "":
        return data
    if isinstance(data, Mapping) and path in data:
        return data[path]

    current = data
    for part in path.split("."):
        if isinstance(current, Mapping) and part in current:
            current = current[part]
        elif isinstance(current, Sequence) and not isinstance(current, str) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return default
            current = current[index]
        else:
            return default
    return current


class JsonLogic:
    """Evaluate rules against a data mapping.

    With ``strict=True`` a ``var`` without default that points at a missing
    value raises :class:`MissingVariableError` instead of yielding ``None``.
    """

    def __init__(self, *, strict: bool = False) -> None:
        self._strict = strict
        self._operations: Dict[str, Callable[[List[Any], Any], Any]] = {
            "var": self._var,
            "missing": self._missing,
            "==": lambda args, data: self._pair(args, data, lambda a, b: a == b),
            "===": lambda args, data: self._pair(args, data, lambda a, b: type(a) is type(b) and a == b),
            "!=": lambda args, data: self._pair(args, data, lambda a, b: a != b),
            "!==": lambda args, data: self._pair(args, data, lambda a, b: type(a) is not type(b) or a != b),
            "<": lambda args, data: self._compare(args, data, lambda a, b: a < b),
            "<=": lambda args, data: self._compare(args, data, lambda a, b: a <= b),
            ">": lambda args, data: self._pair(args, data, lambda a, b: a > b),
            ">=": lambda args, data: self._pair(args, data, lambda a, b: a >= b),
            "!": lambda args, data: not truthy(self._single(args, data, "!")),
            "!!": lambda args, data: truthy(self._single(args, data, "!!")),
            "and": self._and,
            "or": self._or,
            "if": self._if,
            "in": self._in,
        }

    def apply(self, rule: Any, data: Any = None) -> Any:
        if isinstance(rule, list):
            return [self.apply(item, data) for item in rule]
        if not isinstance(rule, dict):
            return rule
        if len(rule) != 1:
            raise JsonLogicError(f"a rule must have exactly one operator, got {sorted(rule)}")

        operator, args = next(iter(rule.items()))
        operation = self._operations.get(operator)
        if operation is None:
            raise JsonLogicError(f"unsupported operator {operator!r}")
        if not isinstance(args, list):
            args = [args]
        return operation(args, data)

    def _var(self, args: List[Any], data: Any) -> Any:
        path = self.apply(args[0], data) if args else ""
        has_default = len(args) > 1
        default = self.apply(args[1], data) if has_default else None
        value = resolve_var(data, "" if path is None else str(path))
        if value is _MISSING:
            if self._strict and not has_default:
                raise MissingVariableError(str(path))
            return default
        return value

    def _missing(self, args: List[Any], data: Any) -> List[Any]:
        keys = self.apply(args, data)
        if len(keys) == 1 and isinstance(keys[0], list):
            keys = keys[0]
        return [key for key in keys if resolve_var(data, str(key)) is _MISSING]

    def _single(self, args: List[Any], data: Any, operator: str) -> Any:
        if len(args) != 1:
            raise JsonLogicError(f"{operator!r} expects one argument")
        return self.apply(args[0], data)

    def _pair(self, args: List[Any], data: Any, check: Callable[[Any, Any], bool]) -> bool:
        if len(args) != 2:
            raise JsonLogicError("comparison expects two arguments")
        left, right = self.apply(args, data)
        try:
            return check(left, right)
        except TypeError as exc:
            raise JsonLogicError(f"cannot compare {left!r} and {right!r}") from exc

    def _compare(self, args: List[Any], data: Any, check: Callable[[Any, Any], bool]) -> bool:
        if len(args) == 3:
            low, middle, high = self.apply(args, data)
            try:
                return check(low, middle) and check(middle, high)
            except TypeError as exc:
                raise JsonLogicError(f"cannot compare {low!r}, {middle!r} and {high!r}") from exc
        return self._pair(args, data, check)

    def _and(self, args: List[Any], data: Any) -> Any:
        value: Any = True
        for arg in args:
            value = self.apply(arg, data)
            if not truthy(value):
                return value
        return value

    def _or(self, args: List[Any], data: Any) -> Any:
        value: Any = False
        for arg in args:
            value = self.apply(arg, data)
            if truthy(value):
                return value
        return value

    def _if(self, args: List[Any], data: Any) -> Any:
        index = 0
        while index + 1 < len(args):
            if truthy(self.apply(args[index], data)):
                return self.apply(args[index + 1], data)
            index += 2
        if index < len(args):
            return self.apply(args[index], data)
        return None

    def _in(self, args: List[Any], data: Any) -> bool:
        if len(args) != 2:
            raise JsonLogicError("'in' expects two arguments")
        needle, haystack = self.apply(args, data)
        if haystack is None:
            return False
        if isinstance(haystack, str):
            return isinstance(needle, str) and needle in haystack
        try:
            return needle in haystack
        except TypeError as exc:
            raise JsonLogicError(f"cannot search {haystack!r} for {needle!r}") from exc


def json_logic(rule: Any, data: Any = None) -> Any:
    return JsonLogic().apply(rule, data)
