"""
Expressions reference live component instances from a layout.

An expression is a string of the form `$id` or `$id.method(args)`. The bare form resolves to the instance registered
under `id`; the call form invokes `method` on that instance with literal arguments and resolves to its return value.
Arguments are literals only: numbers, strings, booleans, null and lists or mappings of those. Chained calls and
nested expressions are not part of the language.

Resolution never raises. A missing instance, a method outside the instance's capabilities, or a failing call all
resolve to None and log a warning.
"""

from __future__ import annotations

# standard libraries
import ast
import dataclasses
import inspect
import logging
import re
import typing

# third party libraries
# None

# local libraries
if typing.TYPE_CHECKING:
    from nion.layout import InstanceRegistry


_expression_re = re.compile(r"^\$(?P<identifier>[A-Za-z_][\w\-]*)(?:\.(?P<method>[A-Za-z_]\w*)\((?P<args>.*)\))?$", re.DOTALL)

_expression_start_re = re.compile(r"^\$[A-Za-z_]")

_literal_names = {"true": True, "false": False, "null": None, "True": True, "False": False, "None": None}


class ExpressionSyntaxError(ValueError):
    pass


@dataclasses.dataclass(frozen=True)
class Expression:
    text: str
    identifier: str
    method: typing.Optional[str] = None
    args: typing.Tuple[typing.Any, ...] = ()

    @property
    def is_reference(self) -> bool:
        return self.method is None

    def __str__(self) -> str:
        return self.text


@dataclasses.dataclass(frozen=True)
class InvalidExpression:
    """An expression string that failed to parse. Resolves to None."""
    text: str
    message: str

    def __str__(self) -> str:
        return self.text


def is_expression(value: typing.Any) -> bool:
    # "$#,##0" and "$100" are literals; only a prefix followed by an identifier starts an expression.
    return isinstance(value, str) and _expression_start_re.match(value) is not None


def _literal(node: ast.AST, text: str) -> typing.Any:
    if isinstance(node, ast.Constant):
        return node.value
    if isinstance(node, ast.Name) and node.id in _literal_names:
        return _literal_names[node.id]
    if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.USub, ast.UAdd)) and isinstance(node.operand, ast.Constant):
        value = node.operand.value
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return -value if isinstance(node.op, ast.USub) else value
    if isinstance(node, (ast.List, ast.Tuple)):
        return [_literal(element, text) for element in node.elts]
    if isinstance(node, ast.Dict):
        d = dict()
        for key_node, value_node in zip(node.keys, node.values):
            if key_node is None:
                raise ExpressionSyntaxError(f"Unpacking is not allowed in expression '{text}'.")
            d[_literal(key_node, text)] = _literal(value_node, text)
        return d
    raise ExpressionSyntaxError(f"Only literal arguments are allowed in expression '{text}'.")


def _parse_arguments(args_text: str, text: str) -> typing.Tuple[typing.Any, ...]:
    if not args_text.strip():
        return ()
    try:
        tree = ast.parse(f"_({args_text})", mode="eval")
    except SyntaxError as e:
        raise ExpressionSyntaxError(f"Malformed arguments in expression '{text}'.") from e
    call = tree.body
    # anything other than a single call of the placeholder means a chained call slipped into the argument text.
    if not isinstance(call, ast.Call) or not isinstance(call.func, ast.Name) or call.func.id != "_":
        raise ExpressionSyntaxError(f"Chained calls are not allowed in expression '{text}'.")
    if call.keywords:
        raise ExpressionSyntaxError(f"Keyword arguments are not allowed in expression '{text}'.")
    return tuple(_literal(arg, text) for arg in call.args)


def parse_expression(text: str) -> Expression:
    """Parse an expression string. Raises ExpressionSyntaxError if it is malformed."""
    m = _expression_re.match(text.strip())
    if not m:
        raise ExpressionSyntaxError(f"Malformed expression '{text}'.")
    method = m.group("method")
    args = _parse_arguments(m.group("args") or "", text) if method else ()
    return Expression(text, m.group("identifier"), method, args)


def tag_value(value: typing.Any) -> typing.Any:
    """Return an Expression (or InvalidExpression) for expression strings, otherwise the value itself.

    Mappings and lists are tagged recursively so that expressions nested in request bodies are found.
    """
    if is_expression(value):
        try:
            return parse_expression(value)
        except ExpressionSyntaxError as e:
            logging.warning("%s", e)
            return InvalidExpression(value, str(e))
    if isinstance(value, typing.Mapping):
        return {k: tag_value(v) for k, v in value.items()}
    if isinstance(value, list):
        return [tag_value(v) for v in value]
    return value


class _PendingResult:
    def __init__(self, expression: Expression, awaitable: typing.Awaitable[typing.Any]) -> None:
        self.expression = expression
        self.awaitable = awaitable


class ExpressionResolver:
    """Resolve tagged values against an instance registry."""

    def __init__(self, registry: InstanceRegistry.InstanceRegistry) -> None:
        self.__registry = registry

    def __evaluate(self, value: typing.Any) -> typing.Any:
        if isinstance(value, str) and is_expression(value):
            value = tag_value(value)
        if isinstance(value, InvalidExpression):
            logging.warning("Expression '%s' cannot be resolved: %s", value.text, value.message)
            return None
        if not isinstance(value, Expression):
            return value
        entry = self.__registry.get_entry(value.identifier)
        if not entry:
            logging.warning("Expression '%s': component '%s' not found.", value.text, value.identifier)
            return None
        if value.method is None:
            return entry.instance
        if not entry.allows(value.method):
            logging.warning("Expression '%s': method '%s' is not available on component '%s'.", value.text, value.method, value.identifier)
            return None
        try:
            result = getattr(entry.instance, value.method)(*value.args)
        except Exception as e:
            logging.warning("Expression '%s' failed: %s", value.text, e)
            return None
        if inspect.isawaitable(result):
            return _PendingResult(value, result)
        return result

    def resolve_now(self, value: typing.Any) -> typing.Any:
        """Resolve a single value without suspending. Asynchronous methods resolve to None."""
        result = self.__evaluate(value)
        if isinstance(result, _PendingResult):
            if inspect.iscoroutine(result.awaitable):
                result.awaitable.close()
            logging.warning("Expression '%s' is asynchronous and cannot be resolved here.", result.expression.text)
            return None
        return result

    async def resolve(self, value: typing.Any) -> typing.Any:
        """Resolve a single value, awaiting asynchronous methods."""
        result = self.__evaluate(value)
        if isinstance(result, _PendingResult):
            try:
                return await result.awaitable
            except Exception as e:
                logging.warning("Expression '%s' failed: %s", result.expression.text, e)
                return None
        return result

    async def resolve_arguments(self, args: typing.Mapping[str, typing.Any]) -> typing.Dict[str, typing.Any]:
        """Resolve each argument in declaration order. No argument sees another argument's resolved value."""
        resolved_args: typing.Dict[str, typing.Any] = dict()
        for k, v in args.items():
            resolved_args[k] = await self.resolve(v)
        return resolved_args

    async def resolve_structure(self, value: typing.Any) -> typing.Any:
        """Resolve every expression inside nested mappings and lists."""
        if isinstance(value, typing.Mapping):
            return {k: await self.resolve_structure(v) for k, v in value.items()}
        if isinstance(value, list):
            return [await self.resolve_structure(v) for v in value]
        return await self.resolve(value)

    def resolve_structure_now(self, value: typing.Any) -> typing.Any:
        if isinstance(value, typing.Mapping):
            return {k: self.resolve_structure_now(v) for k, v in value.items()}
        if isinstance(value, list):
            return [self.resolve_structure_now(v) for v in value]
        return self.resolve_now(value)
