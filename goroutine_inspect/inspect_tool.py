#!/usr/bin/env python3

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
Loads a goroutine stack dump and applies analysis operations to it in the order they are given on
the command line, e.g.:

    goroutine-inspect dump.txt --dedup --keep 'state == "chan receive" && duration > 10' --show

Filter expressions may use the variables id, dups, duration, lines, state and trace, and the
functions contains(haystack, needle), lower(s), upper(s) and matches(text, regex).
"""

import argparse
import logging
import sys

from typing import Any, List, NamedTuple, Optional, Sequence, Union

from overrides import overrides

from goroutine_inspect.colors import COLOR_MODES, should_colorize
from goroutine_inspect.common_util import get_env_var_with_default
from goroutine_inspect.dump_loader import load_dump
from goroutine_inspect.errors import GoroutineInspectError
from goroutine_inspect.goroutine_dump import DEFAULT_SEARCH_LIMIT, GoroutineDump
from goroutine_inspect.tool_base import ToolBase, UserFriendlyToolError


COLOR_ENV_VAR = 'GOROUTINE_INSPECT_COLOR'
SEARCH_LIMIT_ENV_VAR = 'GOROUTINE_INSPECT_SEARCH_LIMIT'

DIFF_OUTPUT_SUFFIXES = ['only_left', 'common', 'only_right']


class Operation(NamedTuple):
    name: str
    argument: Optional[str]


class OperationAction(argparse.Action):
    """
    Appends an operation to a shared list, so that operations are applied in command-line order.
    """
    def __call__(
            self,
            parser: argparse.ArgumentParser,
            namespace: argparse.Namespace,
            values: Union[str, Sequence[Any], None],
            option_string: Optional[str] = None) -> None:
        operations = list(getattr(namespace, self.dest) or [])
        argument = values if isinstance(values, str) else None
        operations.append(Operation(name=self.const, argument=argument))
        setattr(namespace, self.dest, operations)


class GoroutineInspectTool(ToolBase):
    dump: GoroutineDump
    colorize_output: bool

    def add_operation_arg(self, option: str, help_text: str, metavar: Optional[str] = None) -> None:
        name = option.lstrip('-')
        if metavar is None:
            self.arg_parser.add_argument(
                option, dest='operations', action=OperationAction, nargs=0, const=name,
                help=help_text)
        else:
            self.arg_parser.add_argument(
                option, dest='operations', action=OperationAction, const=name, metavar=metavar,
                help=help_text)

    @overrides
    def add_command_line_args(self) -> None:
        self.arg_parser.add_argument(
            'dump_path',
            help='Goroutine dump to analyze. Files with a .gz extension are decompressed.')

        self.add_operation_arg(
            '--dedup', 'Keep one goroutine out of each group with the same stack trace')
        self.add_operation_arg(
            '--delete', 'Delete goroutines matching the expression', metavar='COND')
        self.add_operation_arg(
            '--keep', 'Keep only goroutines matching the expression', metavar='COND')
        self.add_operation_arg('--sort', 'Sort goroutines by id')
        self.add_operation_arg('--summary', 'Show the number of goroutines in each state')
        self.add_operation_arg('--show', 'Show all goroutines')
        self.add_operation_arg(
            '--search',
            'Show goroutines matching the expression, within the --offset/--limit window',
            metavar='COND')
        self.add_operation_arg(
            '--save', 'Save goroutines to a file', metavar='PATH')
        self.add_operation_arg(
            '--diff',
            'Compare goroutine ids with another dump and show the number of goroutines only in '
            'this dump, in both dumps, and only in the other dump',
            metavar='OTHER_DUMP_PATH')

        self.arg_parser.add_argument(
            '--offset',
            help='Number of matching goroutines to skip in --search',
            type=int,
            default=0)
        self.arg_parser.add_argument(
            '--limit',
            help='Max number of goroutines shown by --search. Default: $%s or %d.' % (
                SEARCH_LIMIT_ENV_VAR, DEFAULT_SEARCH_LIMIT),
            type=int,
            default=get_env_var_with_default(SEARCH_LIMIT_ENV_VAR, str(DEFAULT_SEARCH_LIMIT)))
        self.arg_parser.add_argument(
            '--color',
            help='Whether to colorize output. Default: $%s or auto.' % COLOR_ENV_VAR,
            choices=COLOR_MODES,
            default=get_env_var_with_default(COLOR_ENV_VAR, 'auto'))
        self.arg_parser.add_argument(
            '--diff-output-prefix',
            help='With --diff, save the three parts of the diff to files with this prefix and '
                 'the suffixes %s' % ', '.join('.' + suffix for suffix in DIFF_OUTPUT_SUFFIXES))

    @overrides
    def validate_and_process_args(self) -> None:
        if not self.args.operations:
            self.args.operations = [Operation(name='summary', argument=None)]
        if self.args.offset < 0 or self.args.limit < 0:
            self.arg_parser.error('--offset and --limit must be non-negative')
        if self.args.color not in COLOR_MODES:
            self.arg_parser.error('Invalid color mode %s, expected one of: %s' % (
                self.args.color, ', '.join(COLOR_MODES)))
        if self.args.diff_output_prefix and not any(
                operation.name == 'diff' for operation in self.args.operations):
            self.arg_parser.error('--diff-output-prefix requires --diff')
        self.colorize_output = should_colorize(self.args.color, sys.stdout)

    @overrides
    def run_impl(self) -> None:
        try:
            self.dump = load_dump(self.args.dump_path)
            for operation in self.args.operations:
                logging.debug("Applying operation %s", operation)
                self.apply_operation(operation)
        except (GoroutineInspectError, OSError) as ex:
            raise UserFriendlyToolError(str(ex)) from ex

    def apply_operation(self, operation: Operation) -> None:
        name, argument = operation
        if name == 'dedup':
            self.dump.dedupe()
        elif name == 'delete':
            assert argument is not None
            self.dump.delete(argument)
        elif name == 'keep':
            assert argument is not None
            self.dump.keep(argument)
        elif name == 'sort':
            self.dump.sort()
        elif name == 'summary':
            sys.stdout.write(self.dump.summary().format())
        elif name == 'show':
            self.dump.show(sys.stdout, colorize_output=self.colorize_output)
        elif name == 'search':
            assert argument is not None
            self.dump.search(
                argument,
                offset=self.args.offset,
                limit=self.args.limit,
                output=sys.stdout,
                colorize_output=self.colorize_output)
        elif name == 'save':
            assert argument is not None
            self.dump.save(argument)
        elif name == 'diff':
            assert argument is not None
            self.diff_with(argument)
        else:
            raise ValueError("Unknown operation: %s" % name)

    def diff_with(self, other_dump_path: str) -> None:
        dump_diff = self.dump.diff(load_dump(other_dump_path))
        sys.stdout.write(dump_diff.format_summary())
        prefix = self.args.diff_output_prefix
        if prefix:
            for suffix, part in zip(DIFF_OUTPUT_SUFFIXES, dump_diff):
                part.save('%s.%s' % (prefix, suffix))


def main(argv: Optional[List[str]] = None) -> None:
    GoroutineInspectTool().run(argv)


if __name__ == '__main__':
    main()
