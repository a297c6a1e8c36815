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

import argparse
import logging
import sys

from typing import Any, Dict, List, Optional

from overrides import EnforceOverrides

from goroutine_inspect.common_util import init_logging


class UserFriendlyToolError(Exception):
    """
    An exception that is thrown by a command-line tool to indicate an error. We do not print a stack
    trace when reporting this error.
    """
    def __init__(self, message: str, exit_code: int = 1) -> None:
        """
        :param message: The error message.
        :param exit_code: The exit code to use when exiting the tool.
        """
        super().__init__(message)
        assert exit_code != 0, "Exit code 0 is reserved for success. Exception message: " + message
        self.exit_code = exit_code


class ToolBase(EnforceOverrides):
    """
    A base class for the command-line tools of this package.
    """
    arg_parser_created: bool
    arg_parser: argparse.ArgumentParser
    args: argparse.Namespace

    def get_description(self) -> Optional[str]:
        """
        Returns the description of the command-line tool that is shown when invoked with --help.
        By default, the description is taken from the tool class, or from the module containing
        the tool's class, in that order of preference.
        """
        class_docstring = self.__class__.__doc__
        if class_docstring is not None and class_docstring.strip():
            return class_docstring
        return sys.modules[self.__class__.__module__].__doc__

    def get_arg_parser_kwargs(self) -> Dict[str, Any]:
        return dict(description=self.get_description())

    def __init__(self) -> None:
        self.arg_parser_created = False

    def run(self, argv: Optional[List[str]] = None) -> None:
        """
        The top-level function used to run the tool. Command-line arguments are taken from
        sys.argv unless specified.
        """
        self.create_arg_parser()
        self.parse_args(argv)
        self.validate_and_process_args()
        try:
            self.run_impl()
        except UserFriendlyToolError as ex:
            # We don't use logging.exception here to provide a more user-friendly error message.
            # It should not look like a unexpected crash with a stack trace, but like a properly
            # handled error.
            logging.error(str(ex))
            sys.exit(ex.exit_code)

    def parse_args(self, argv: Optional[List[str]] = None) -> None:
        self.args = self.arg_parser.parse_args(argv)
        init_logging(verbose=self.args.verbose)

    def validate_and_process_args(self) -> None:
        """
        Can be overridden to check argument combinations and compute derived settings.
        """
        pass

    def run_impl(self) -> None:
        """
        The overridable function containing the tool's functionality.
        """
        raise NotImplementedError()

    def add_command_line_args(self) -> None:
        """
        Can be overridden to add more command-line arguments to the parser.
        """
        pass

    def create_arg_parser(self) -> None:
        # Don't allow to run this function multiple times.
        if self.arg_parser_created:
            raise RuntimeError("Cannot create the argument parser multiple times")

        self.arg_parser = argparse.ArgumentParser(**self.get_arg_parser_kwargs())

        self.arg_parser.add_argument(
            '--verbose',
            help='Enable verbose output',
            action='store_true'
        )

        self.add_command_line_args()
        self.arg_parser_created = True
