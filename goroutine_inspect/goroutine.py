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
A single goroutine from a stack dump: its metadata line and the lines of its stack trace.
"""

import copy
import logging
import re

from enum import Enum
from typing import Any, Dict, List, Optional

from goroutine_inspect.colors import Colors, colorize
from goroutine_inspect.errors import ParseError
from goroutine_inspect.fingerprint import (
    compute_fingerprint, normalize_body, normalize_line, scrub_header)


GOROUTINE_PREFIX = 'goroutine '
GOROUTINE_ID_RE = re.compile(r'^\d+$')
DURATION_RE = re.compile(r'^(\d+) minutes$')


class MetaType(Enum):
    STATE = 0
    DURATION = 1


class Goroutine:
    """
    Stack trace lines are accumulated with add_line() until freeze() is called. After that the
    goroutine is read-only, has a fingerprint, and may be shared between multiple dumps.
    """
    identity: int
    header: str
    line_count: int
    duration_minutes: int
    attributes: Dict[MetaType, str]

    fingerprint: Optional[str]
    finalized: bool

    # Ids of all goroutines with the same fingerprint, including this one. Only set by dedup.
    duplicate_identities: List[int]

    _raw_lines: List[str]
    _raw_body: Optional[str]
    _normalized_body: Optional[str]

    def __init__(
            self,
            identity: int,
            header: str,
            attributes: Dict[MetaType, str],
            duration_minutes: int = 0) -> None:
        self.identity = identity
        self.header = header
        self.attributes = attributes
        self.duration_minutes = duration_minutes
        # The header counts as the first line.
        self.line_count = 1

        self.fingerprint = None
        self.finalized = False
        self.duplicate_identities = []

        self._raw_lines = []
        self._raw_body = None
        self._normalized_body = None

    @staticmethod
    def from_metadata_line(line: str) -> 'Goroutine':
        return parse_metadata_line(line)

    def __repr__(self) -> str:
        return 'Goroutine(identity=%d, state=%r, lines=%d, duration_minutes=%d)' % (
            self.identity, self.state, self.line_count, self.duration_minutes)

    @property
    def state(self) -> str:
        return self.attributes[MetaType.STATE]

    @property
    def raw_body(self) -> str:
        if self._raw_body is not None:
            return self._raw_body
        return '\n'.join(self._raw_lines)

    @property
    def normalized_body(self) -> str:
        if self._normalized_body is not None:
            return self._normalized_body
        return '\n'.join(normalize_line(line) for line in self._raw_lines)

    def add_line(self, line: str) -> None:
        if self.finalized:
            return

        self.line_count += 1
        self._raw_lines.append(line)

        # Indented lines are expected to look like "\t/path/to/file.go:123 +0x1d".
        if line.startswith('\t') and len(line.split(' ')) != 2:
            logging.warning(
                "Goroutine %d: unexpected format of a source location line: %r",
                self.identity, line)

    def freeze(self) -> None:
        if self.finalized:
            return
        self.fingerprint = compute_fingerprint(normalize_body(self._raw_lines))
        self._raw_body = '\n'.join(self._raw_lines)
        self._normalized_body = self.normalized_body
        self._raw_lines = []
        self.finalized = True

    def with_duplicates(self, duplicate_identities: List[int]) -> 'Goroutine':
        """
        Returns a shallow copy of this goroutine with the given list of duplicate ids. The frozen
        stack trace is shared with this goroutine.
        """
        assert self.finalized, "Goroutine %d must be frozen before dedup" % self.identity
        result = copy.copy(self)
        result.duplicate_identities = list(duplicate_identities)
        return result

    def predicate_attributes(self) -> Dict[str, Any]:
        """
        Returns the values of the variables available to filter expressions.
        """
        return {
            'id': self.identity,
            'dups': len(self.duplicate_identities),
            'duration': self.duration_minutes,
            'lines': self.line_count,
            'state': self.state,
            'trace': self.raw_body,
        }

    def render(self, colorize_output: bool = False) -> str:
        """
        Returns the text of this goroutine for display, followed by an empty line. Duplicate
        groups are shown with a scrubbed header and a stack trace without argument values.
        """
        if len(self.duplicate_identities) > 1:
            first_line = '%s %s times: %s' % (
                colorize(scrub_header(self.header), Colors.BLUE, colorize_output),
                colorize(str(len(self.duplicate_identities)), Colors.RED, colorize_output),
                colorize(str(self.duplicate_identities), Colors.GREEN, colorize_output))
            body = self.normalized_body
        else:
            first_line = colorize(self.header, Colors.BLUE, colorize_output)
            body = self.raw_body

        lines = [first_line]
        if body:
            lines.append(body)
        return '\n'.join(lines) + '\n\n'


def parse_metadata_line(line: str) -> Goroutine:
    """
    Creates a goroutine from a line like "goroutine 42 [chan receive, 5 minutes]:". Newer Go
    versions may print extra fields between the id and the bracket, these are ignored.

    >>> g = parse_metadata_line('goroutine 42 [chan receive, 5 minutes]:')
    >>> g.identity, g.state, g.duration_minutes, g.attributes[MetaType.DURATION]
    (42, 'chan receive', 5, '5 minutes')
    >>> parse_metadata_line('goroutine 7 [select, locked to thread]:').duration_minutes
    0
    """
    line = line.rstrip('\r\n')
    if not line.startswith(GOROUTINE_PREFIX):
        raise ParseError("Metadata line does not start with '%s'" % GOROUTINE_PREFIX, line)

    open_bracket_pos = line.find('[')
    close_bracket_pos = line.rfind(']')
    if open_bracket_pos < 0 or close_bracket_pos < open_bracket_pos:
        raise ParseError("No annotation list in square brackets", line)

    id_fields = line[len(GOROUTINE_PREFIX):open_bracket_pos].split()
    if not id_fields or not GOROUTINE_ID_RE.match(id_fields[0]):
        raise ParseError("Could not parse goroutine id", line)
    identity = int(id_fields[0])

    annotations = [
        annotation.strip()
        for annotation in line[open_bracket_pos + 1:close_bracket_pos].split(',')
    ]
    attributes = {MetaType.STATE: annotations[0]}

    duration_minutes = 0
    if len(annotations) > 1:
        attributes[MetaType.DURATION] = annotations[1]
        duration_match = DURATION_RE.match(annotations[1])
        if duration_match:
            duration_minutes = int(duration_match.group(1))

    return Goroutine(
        identity=identity,
        header=line,
        attributes=attributes,
        duration_minutes=duration_minutes)
