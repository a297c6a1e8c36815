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
Normalization of goroutine stack traces, so that stacks that only differ in pointer argument values
can be recognized as duplicates.
"""

import hashlib
import re

from typing import Iterable, Union


# A trailing argument list consisting only of hexadecimal values, e.g. "(0xc000010000, 0x3)".
LINE_WITH_ARGS_RE = re.compile(r'\(((0x[0-9a-f ,]+)+)\)$')
SCRUBBED_ARGS = '(...)'

DIGITS_RE = re.compile(r'[0-9]+')
SCRUBBED_DIGITS = '~'


def encode_if_needed(s: Union[bytes, str]) -> bytes:
    if isinstance(s, str):
        return s.encode('utf-8')
    return s


def normalize_line(line: str) -> str:
    """
    Replaces the trailing hexadecimal argument list of a stack frame line with a placeholder.

    >>> normalize_line('main.worker(0xc00001c0c0, 0x2)')
    'main.worker(...)'
    >>> normalize_line('main.main()')
    'main.main()'
    >>> normalize_line('\\t/src/main.go:15 +0x65')
    '\\t/src/main.go:15 +0x65'
    >>> normalize_line('main.handle({0x5e9d40, 0xc0000a6000})')
    'main.handle({0x5e9d40, 0xc0000a6000})'
    """
    match = LINE_WITH_ARGS_RE.search(line)
    if match is None:
        return line
    return line[:match.start()] + SCRUBBED_ARGS


def normalize_body(lines: Iterable[str]) -> str:
    """
    Returns the text that is fingerprinted. Every line is newline-terminated, so a trace without
    lines and a trace with one empty line are different.

    >>> normalize_body(['main.worker(0x1, 0x2)', '\\tworker.go:25 +0x85'])
    'main.worker(...)\\n\\tworker.go:25 +0x85\\n'
    >>> normalize_body([]), normalize_body([''])
    ('', '\\n')
    """
    return ''.join(normalize_line(line) + '\n' for line in lines)


def compute_fingerprint(normalized_body: Union[bytes, str]) -> str:
    return hashlib.sha256(encode_if_needed(normalized_body)).hexdigest()


def scrub_header(header: str) -> str:
    """
    Replaces every run of digits in a goroutine header line, so that the headers of duplicate
    goroutines look the same regardless of their ids and durations.

    >>> scrub_header('goroutine 1234 [chan receive, 15 minutes]:')
    'goroutine ~ [chan receive, ~ minutes]:'
    """
    return DIGITS_RE.sub(SCRUBBED_DIGITS, header)
