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
Reads goroutine stack dumps, such as the output of a Go program killed with SIGQUIT or of the
/debug/pprof/goroutine?debug=2 endpoint.
"""

import gzip
import logging
import os

from typing import Iterable, Iterator, Optional, TextIO

from goroutine_inspect.errors import ParseError
from goroutine_inspect.goroutine import GOROUTINE_PREFIX, Goroutine, parse_metadata_line
from goroutine_inspect.goroutine_dump import GoroutineDump


def iter_goroutines(lines: Iterable[str]) -> Iterator[Goroutine]:
    """
    Yields frozen goroutines. A goroutine starts with its metadata line and ends with an empty
    line, the next metadata line, or the end of input. Lines outside of any goroutine, like the
    "panic: ..." message that precedes the stacks, are skipped.
    """
    current: Optional[Goroutine] = None
    num_skipped_lines = 0

    for line_number, line in enumerate(lines, start=1):
        line = line.rstrip('\r\n')

        if line.startswith(GOROUTINE_PREFIX):
            if current is not None:
                current.freeze()
                yield current
            try:
                current = parse_metadata_line(line)
            except ParseError as ex:
                raise ex.with_line_number(line_number) from ex
            continue

        if not line.strip():
            if current is not None:
                current.freeze()
                yield current
                current = None
            continue

        if current is None:
            num_skipped_lines += 1
            continue
        current.add_line(line)

    if current is not None:
        current.freeze()
        yield current

    if num_skipped_lines > 0:
        logging.debug("Skipped %d lines outside of goroutine stack traces", num_skipped_lines)


def load_dump_from_lines(lines: Iterable[str]) -> GoroutineDump:
    return GoroutineDump(iter_goroutines(lines))


def open_dump_file(dump_path: str) -> TextIO:
    if dump_path.endswith('.gz'):
        return gzip.open(dump_path, 'rt')
    return open(dump_path)


def load_dump(dump_path: str) -> GoroutineDump:
    """
    Loads a goroutine dump from a file. Files with a .gz extension are decompressed.
    """
    if not os.path.exists(dump_path):
        raise IOError(f"File {dump_path} does not exist")

    with open_dump_file(dump_path) as input_file:
        dump = load_dump_from_lines(input_file)
    logging.info("Loaded %d goroutines from %s", len(dump), dump_path)
    return dump
