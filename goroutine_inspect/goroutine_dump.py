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
An ordered collection of goroutines parsed from one stack dump, and the operations used to analyze
it: dedup, filtering by an expression, search, sort, summary, display, and saving to a file.
"""

import itertools
import logging
import sys

from collections import Counter
from typing import (
    TYPE_CHECKING, Dict, Iterable, Iterator, List, NamedTuple, Optional, TextIO, Tuple)

from goroutine_inspect.colors import Colors, colorize
from goroutine_inspect.goroutine import Goroutine
from goroutine_inspect.predicate import compile_predicate

if TYPE_CHECKING:
    from goroutine_inspect.dump_diff import DumpDiff


DEFAULT_SEARCH_LIMIT = 10


class DumpSummary(NamedTuple):
    total: int
    # Number of goroutines in each state, sorted by state name.
    state_counts: List[Tuple[str, int]]

    def format(self) -> str:
        lines = ['# of goroutines: %d' % self.total]
        if self.state_counts:
            lines.append('')
            lines.extend('%15s: %d' % (state, count) for state, count in self.state_counts)
        return '\n'.join(lines) + '\n'


class GoroutineDump:
    """
    Operations that filter the dump evaluate the whole expression against every goroutine first,
    and only then replace the list of goroutines, so a failing expression leaves the dump as is.
    """
    _goroutines: List[Goroutine]

    def __init__(self, goroutines: Optional[Iterable[Goroutine]] = None) -> None:
        self._goroutines = list(goroutines) if goroutines is not None else []

    @staticmethod
    def from_mapping(goroutines_by_id: Dict[int, Goroutine]) -> 'GoroutineDump':
        return GoroutineDump(
            goroutine for _, goroutine in sorted(
                goroutines_by_id.items(), key=lambda item: item[0]))

    def __len__(self) -> int:
        return len(self._goroutines)

    def __iter__(self) -> Iterator[Goroutine]:
        return iter(self._goroutines)

    def __repr__(self) -> str:
        return 'GoroutineDump(%d goroutines)' % len(self._goroutines)

    @property
    def goroutines(self) -> List[Goroutine]:
        return list(self._goroutines)

    def identities(self) -> List[int]:
        return [goroutine.identity for goroutine in self._goroutines]

    def add(self, goroutine: Goroutine) -> None:
        self._goroutines.append(goroutine)

    def _evaluate_all(self, cond: str) -> List[bool]:
        predicate = compile_predicate(cond)
        return [predicate.evaluate(goroutine) for goroutine in self._goroutines]

    def _select(self, cond: str, matching: bool) -> List[Goroutine]:
        return [
            goroutine
            for goroutine, matched in zip(self._goroutines, self._evaluate_all(cond))
            if matched == matching
        ]

    def _replace_goroutines(self, kept: List[Goroutine]) -> Tuple[int, int]:
        num_removed = len(self._goroutines) - len(kept)
        logging.info("Deleted %d goroutines, kept %d.", num_removed, len(kept))
        self._goroutines = kept
        return num_removed, len(kept)

    def delete(self, cond: str) -> Tuple[int, int]:
        """
        Removes goroutines matching the expression. Returns the number of removed and kept
        goroutines.
        """
        return self._replace_goroutines(self._select(cond, matching=False))

    def keep(self, cond: str) -> Tuple[int, int]:
        """
        Keeps only the goroutines matching the expression. Returns the number of removed and kept
        goroutines.
        """
        return self._replace_goroutines(self._select(cond, matching=True))

    def copy(self, cond: str = '') -> 'GoroutineDump':
        """
        Returns a new dump with the goroutines matching the expression, or all goroutines if the
        expression is empty. The goroutines themselves are shared, not copied.
        """
        if not cond.strip():
            return GoroutineDump(self._goroutines)
        return GoroutineDump(self._select(cond, matching=True))

    def dedupe(self) -> int:
        """
        Keeps one goroutine out of every group of goroutines with the same fingerprint, and records
        the ids of the whole group in it. The first goroutine of each group is kept, and the
        relative order of kept goroutines does not change. Returns the number of removed
        goroutines.
        """
        groups: Dict[str, List[Goroutine]] = {}
        for goroutine in self._goroutines:
            goroutine.freeze()
            assert goroutine.fingerprint is not None
            groups.setdefault(goroutine.fingerprint, []).append(goroutine)

        kept: List[Goroutine] = []
        for goroutine in self._goroutines:
            assert goroutine.fingerprint is not None
            group = groups[goroutine.fingerprint]
            if group[0] is not goroutine:
                continue
            # Members of a group could already be representatives from an earlier dedup.
            duplicate_identities = sorted(set(itertools.chain.from_iterable(
                member.duplicate_identities or [member.identity] for member in group)))
            kept.append(goroutine.with_duplicates(duplicate_identities))

        num_removed = len(self._goroutines) - len(kept)
        if num_removed > 0:
            logging.info("dedupped %d, kept %d", len(self._goroutines), len(kept))
        self._goroutines = kept
        return num_removed

    def search(
            self,
            cond: str,
            offset: int = 0,
            limit: int = DEFAULT_SEARCH_LIMIT,
            output: Optional[TextIO] = None,
            colorize_output: bool = False) -> List[Goroutine]:
        """
        Displays the goroutines matching the expression whose index among all matches is in the
        range [offset, offset + limit). Returns the displayed goroutines.
        """
        if offset < 0 or limit < 0:
            raise ValueError(
                "Offset and limit must be non-negative, got offset=%d, limit=%d" % (offset, limit))
        matches = self._select(cond, matching=True)
        shown = matches[offset:offset + limit]

        output = output or sys.stdout
        output.write(colorize(
            'Search with offset %d and limit %d.' % (offset, limit),
            Colors.GREEN,
            colorize_output) + '\n\n')
        for goroutine in shown:
            output.write(goroutine.render(colorize_output))
        logging.debug("Found %d matching goroutines, displayed %d", len(matches), len(shown))
        return shown

    def sort(self) -> None:
        """
        Sorts goroutines by id.
        """
        self._goroutines.sort(key=lambda goroutine: goroutine.identity)

    def summary(self) -> DumpSummary:
        state_counter = Counter(goroutine.state for goroutine in self._goroutines)
        return DumpSummary(
            total=len(self._goroutines),
            state_counts=sorted(state_counter.items()))

    def show(self, output: Optional[TextIO] = None, colorize_output: bool = False) -> None:
        output = output or sys.stdout
        for goroutine in self._goroutines:
            output.write(goroutine.render(colorize_output))

    def save(self, output_path: str) -> None:
        try:
            with open(output_path, 'w') as output_file:
                for goroutine in self._goroutines:
                    output_file.write(goroutine.render())
        except OSError as ex:
            logging.error("Failed to save goroutines to %s: %s", output_path, ex)
            raise
        logging.info("Saved %d goroutines to %s", len(self._goroutines), output_path)

    def diff(self, other: 'GoroutineDump') -> 'DumpDiff':
        from goroutine_inspect.dump_diff import diff_dumps
        return diff_dumps(self, other)
