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
Exceptions raised while parsing goroutine dumps and evaluating filter expressions.
"""

from typing import Optional


class GoroutineInspectError(Exception):
    """
    Base class for all errors reported by the goroutine dump analysis code.
    """
    pass


class ParseError(GoroutineInspectError):
    """
    A goroutine metadata line could not be parsed.
    """
    reason: str
    line: str
    line_number: Optional[int]

    def __init__(self, reason: str, line: str, line_number: Optional[int] = None) -> None:
        message = f"{reason}: {line!r}"
        if line_number is not None:
            message = f"Line {line_number}: {message}"
        super().__init__(message)
        self.reason = reason
        self.line = line
        self.line_number = line_number

    def with_line_number(self, line_number: int) -> 'ParseError':
        return ParseError(self.reason, self.line, line_number)


class ExpressionError(GoroutineInspectError):
    """
    Base class for errors related to filter expressions. The expression is not known yet when the
    error is raised from inside a function called by the expression, and is filled in by the
    evaluator.
    """
    reason: str
    expression: Optional[str]

    def __init__(self, reason: str, expression: Optional[str] = None) -> None:
        message = reason
        if expression is not None:
            message = f"{reason} (expression: {expression})"
        super().__init__(message)
        self.reason = reason
        self.expression = expression


class ExpressionSyntaxError(ExpressionError):
    pass


class EvaluationError(ExpressionError):
    """
    Evaluating an expression against a particular goroutine failed.
    """
    goroutine_id: Optional[int]

    def __init__(
            self,
            reason: str,
            expression: Optional[str] = None,
            goroutine_id: Optional[int] = None) -> None:
        if goroutine_id is not None:
            reason = f"{reason} (goroutine {goroutine_id})"
        super().__init__(reason, expression)
        self.goroutine_id = goroutine_id


class ArityError(EvaluationError):
    """
    A function in an expression was called with a wrong number of arguments.
    """
    pass


class ResultTypeError(ExpressionError):
    """
    An expression evaluated to a non-boolean value for a particular goroutine.
    """
    goroutine_id: Optional[int]

    def __init__(
            self,
            reason: str,
            expression: Optional[str] = None,
            goroutine_id: Optional[int] = None) -> None:
        if goroutine_id is not None:
            reason = f"{reason} (goroutine {goroutine_id})"
        super().__init__(reason, expression)
        self.goroutine_id = goroutine_id
