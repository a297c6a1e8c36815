# Copyright (c) YugabyteDB, Inc.
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may not use this file except
# in compliance with the License.  You may obtain a copy of the License at
#
# http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software distributed under the License
# is distributed on an "AS IS" BASIS, WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express
# or implied.  See the License for the specific language governing permissions and limitations
# under the License.

"""
Boolean filter expressions over goroutines, e.g.

    state == "chan receive" && duration > 10 && contains(trace, "net/http")

The expression language is a small C-like subset: literals, the variables id, dups, duration,
lines, state and trace, comparison, boolean and arithmetic operators, and calls to a fixed table of
functions: contains(haystack, needle), lower(s), upper(s) and matches(text, regex). Expressions are
parsed with the Python ast module after rewriting the C-style boolean operators, and only a
whitelist of node types is accepted, so no user code is ever executed.

This is a subset of the govaluate syntax: regular expression matching is done with matches()
instead of the =~ and !~ operators, and there is no ** operator and no ternary ?: operator.
"""

import ast
import operator
import re

from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from goroutine_inspect.errors import (
    ArityError, EvaluationError, ExpressionError, ExpressionSyntaxError, ResultTypeError)
from goroutine_inspect.goroutine import Goroutine


PredicateFunction = Callable[..., Any]

BOOLEAN_NAMES: Mapping[str, bool] = MappingProxyType({'true': True, 'false': False})

# Replacements applied outside of string literals, longest first.
OPERATOR_REPLACEMENTS = [
    ('&&', ' and '),
    ('||', ' or '),
]

BINARY_OPERATORS: Mapping[type, Callable[[Any, Any], Any]] = MappingProxyType({
    ast.Add: operator.add,
    ast.Sub: operator.sub,
    ast.Mult: operator.mul,
    ast.Div: operator.truediv,
    ast.Mod: operator.mod,
})

COMPARISON_OPERATORS: Mapping[type, Callable[[Any, Any], Any]] = MappingProxyType({
    ast.Eq: operator.eq,
    ast.NotEq: operator.ne,
    ast.Lt: operator.lt,
    ast.LtE: operator.le,
    ast.Gt: operator.gt,
    ast.GtE: operator.ge,
})


def _require_strings(function_name: str, args: List[Any]) -> None:
    for arg in args:
        if not isinstance(arg, str):
            raise EvaluationError(
                "%s() expects string arguments, got %s: %r" % (
                    function_name, type(arg).__name__, arg))


def contains(*args: Any) -> bool:
    if len(args) != 2:
        raise ArityError("contains() accepts exactly two arguments")
    _require_strings('contains', list(args))
    haystack, needle = args
    return needle in haystack


def lower(*args: Any) -> str:
    if len(args) != 1:
        raise ArityError("lower() accepts exactly one argument")
    _require_strings('lower', list(args))
    return args[0].lower()


def upper(*args: Any) -> str:
    if len(args) != 1:
        raise ArityError("upper() accepts exactly one argument")
    _require_strings('upper', list(args))
    return args[0].upper()


def matches(*args: Any) -> bool:
    """
    Regular expression search, the counterpart of the =~ operator of other expression languages.

    >>> matches("main.go:42 +0x1d", r":\\d+ ")
    True
    """
    if len(args) != 2:
        raise ArityError("matches() accepts exactly two arguments")
    _require_strings('matches', list(args))
    text, pattern = args
    try:
        return re.search(pattern, text) is not None
    except re.error as ex:
        raise EvaluationError("Invalid regular expression %r: %s" % (pattern, ex)) from ex


DEFAULT_FUNCTIONS: Mapping[str, PredicateFunction] = MappingProxyType({
    'contains': contains,
    'lower': lower,
    'matches': matches,
    'upper': upper,
})


def unquote_expression(expression: str) -> str:
    """
    Removes the double quotes around an expression that was quoted as a whole on the command line.

    >>> unquote_expression('"state == \\'running\\'"')
    "state == 'running'"
    >>> unquote_expression('state == "running"')
    'state == "running"'
    """
    if (len(expression) >= 2 and
            expression[0] == '"' and
            expression[-1] == '"' and
            '"' not in expression[1:-1]):
        return expression[1:-1].strip()
    return expression


def translate_expression(expression: str) -> str:
    """
    Rewrites the C-style boolean operators of an expression into Python ones. String literals are
    copied verbatim.

    >>> translate_expression('state == "running" && !contains(trace, "a&&b")')
    'state == "running"  and   not contains(trace, "a&&b")'
    >>> translate_expression('dups != 1 || lines > 3')
    'dups != 1  or  lines > 3'
    """
    result: List[str] = []
    pos = 0
    length = len(expression)
    while pos < length:
        c = expression[pos]
        if c in ('"', "'"):
            end = pos + 1
            while end < length and expression[end] != c:
                if expression[end] == '\\':
                    end += 1
                end += 1
            if end >= length:
                raise ExpressionSyntaxError("Unterminated string literal", expression)
            result.append(expression[pos:end + 1])
            pos = end + 1
            continue

        replaced = False
        for c_operator, python_operator in OPERATOR_REPLACEMENTS:
            if expression.startswith(c_operator, pos):
                result.append(python_operator)
                pos += len(c_operator)
                replaced = True
                break
        if replaced:
            continue

        if c == '!' and not expression.startswith('!=', pos):
            result.append(' not ')
        else:
            result.append(c)
        pos += 1
    return ''.join(result)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


class Predicate:
    """
    A compiled filter expression. Compile once, then call evaluate() for every goroutine.
    """
    expression: str
    functions: Mapping[str, PredicateFunction]
    tree: ast.Expression

    def __init__(
            self,
            expression: str,
            functions: Mapping[str, PredicateFunction] = DEFAULT_FUNCTIONS) -> None:
        self.expression = unquote_expression(expression.strip())
        self.functions = MappingProxyType(dict(functions))
        if not self.expression:
            raise ExpressionSyntaxError("Empty expression", expression)

        python_source = translate_expression(self.expression).strip()
        try:
            self.tree = ast.parse(python_source, mode='eval')
        except SyntaxError as ex:
            raise ExpressionSyntaxError(
                "Invalid syntax: %s" % ex.msg, self.expression) from ex
        except (RecursionError, MemoryError, ValueError) as ex:
            raise ExpressionSyntaxError(
                "Expression is too complex to parse: %s" % type(ex).__name__,
                self.expression) from ex
        for node in ast.walk(self.tree.body):
            self._validate_node(node)

    def _validate_node(self, node: ast.AST) -> None:
        if isinstance(node, (ast.BoolOp, ast.And, ast.Or, ast.Not, ast.USub, ast.UAdd, ast.Load)):
            return
        if isinstance(node, ast.UnaryOp) and isinstance(node.op, (ast.Not, ast.USub, ast.UAdd)):
            return
        if isinstance(node, ast.BinOp) and type(node.op) in BINARY_OPERATORS:
            return
        if type(node) in BINARY_OPERATORS:
            return
        if isinstance(node, ast.Compare) and all(
                type(op) in COMPARISON_OPERATORS for op in node.ops):
            return
        if type(node) in COMPARISON_OPERATORS:
            return
        if isinstance(node, ast.Name):
            return
        if isinstance(node, ast.Constant) and type(node.value) in (str, int, float, bool):
            return
        if isinstance(node, ast.Call):
            if not isinstance(node.func, ast.Name):
                raise ExpressionSyntaxError("Only named functions can be called", self.expression)
            if node.func.id not in self.functions:
                raise ExpressionSyntaxError(
                    "Undefined function %s, available functions: %s" % (
                        node.func.id, ', '.join(sorted(self.functions))),
                    self.expression)
            if node.keywords or any(isinstance(arg, ast.Starred) for arg in node.args):
                raise ExpressionSyntaxError(
                    "Only positional arguments are allowed in a call to %s()" % node.func.id,
                    self.expression)
            return
        raise ExpressionSyntaxError(
            "Unsupported syntax: %s" % type(node).__name__, self.expression)

    def evaluate(self, goroutine: Goroutine) -> bool:
        return self.evaluate_attributes(goroutine.predicate_attributes(), goroutine.identity)

    def evaluate_attributes(
            self,
            variables: Dict[str, Any],
            goroutine_id: Optional[int] = None) -> bool:
        try:
            result = self._evaluate_node(self.tree.body, variables)
        except ArityError as ex:
            raise ArityError(ex.reason, self.expression, goroutine_id) from ex
        except EvaluationError as ex:
            raise EvaluationError(ex.reason, self.expression, goroutine_id) from ex
        except RecursionError as ex:
            raise EvaluationError(
                "Expression is nested too deeply to evaluate",
                self.expression,
                goroutine_id) from ex
        except (TypeError, ValueError, ArithmeticError) as ex:
            raise EvaluationError(str(ex), self.expression, goroutine_id) from ex

        if not isinstance(result, bool):
            raise ResultTypeError(
                "Expression should return a boolean, got %s: %r" % (type(result).__name__, result),
                self.expression,
                goroutine_id)
        return result

    def _evaluate_bool_operand(self, node: ast.AST, variables: Dict[str, Any]) -> bool:
        value = self._evaluate_node(node, variables)
        if not isinstance(value, bool):
            raise EvaluationError(
                "Boolean operator applied to a %s value: %r" % (type(value).__name__, value))
        return value

    def _evaluate_node(self, node: ast.AST, variables: Dict[str, Any]) -> Any:
        if isinstance(node, ast.Constant):
            return node.value

        if isinstance(node, ast.Name):
            if node.id in BOOLEAN_NAMES:
                return BOOLEAN_NAMES[node.id]
            if node.id not in variables:
                raise EvaluationError(
                    "No variable named %s, available variables: %s" % (
                        node.id, ', '.join(sorted(variables))))
            return variables[node.id]

        if isinstance(node, ast.BoolOp):
            # "and" stops at the first False, "or" stops at the first True.
            stop_value = isinstance(node.op, ast.Or)
            for value_node in node.values:
                if self._evaluate_bool_operand(value_node, variables) == stop_value:
                    return stop_value
            return not stop_value

        if isinstance(node, ast.UnaryOp):
            if isinstance(node.op, ast.Not):
                return not self._evaluate_bool_operand(node.operand, variables)
            operand = self._evaluate_node(node.operand, variables)
            if not _is_number(operand):
                raise EvaluationError(
                    "Unary minus or plus applied to a %s value: %r" % (
                        type(operand).__name__, operand))
            return -operand if isinstance(node.op, ast.USub) else operand

        if isinstance(node, ast.BinOp):
            left = self._evaluate_node(node.left, variables)
            right = self._evaluate_node(node.right, variables)
            both_strings = isinstance(left, str) and isinstance(right, str)
            if not (_is_number(left) and _is_number(right)) and not (
                    both_strings and isinstance(node.op, ast.Add)):
                raise EvaluationError(
                    "Unsupported operand types for %s: %s and %s" % (
                        type(node.op).__name__, type(left).__name__, type(right).__name__))
            return BINARY_OPERATORS[type(node.op)](left, right)

        if isinstance(node, ast.Compare):
            left = self._evaluate_node(node.left, variables)
            for op, comparator in zip(node.ops, node.comparators):
                right = self._evaluate_node(comparator, variables)
                if not COMPARISON_OPERATORS[type(op)](left, right):
                    return False
                left = right
            return True

        if isinstance(node, ast.Call):
            assert isinstance(node.func, ast.Name)
            function_name = node.func.id
            args = [self._evaluate_node(arg, variables) for arg in node.args]
            try:
                return self.functions[function_name](*args)
            except ExpressionError:
                raise
            except Exception as ex:
                raise EvaluationError("%s() failed: %s" % (function_name, ex)) from ex

        raise EvaluationError("Unsupported syntax: %s" % type(node).__name__)


def compile_predicate(
        expression: str,
        functions: Mapping[str, PredicateFunction] = DEFAULT_FUNCTIONS) -> Predicate:
    return Predicate(expression, functions)
