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
Compares two goroutine dumps, e.g. taken a few minutes apart from the same process, by goroutine id.
"""

import logging

from typing import Dict, NamedTuple

from goroutine_inspect.goroutine import Goroutine
from goroutine_inspect.goroutine_dump import GoroutineDump


class DumpDiff(NamedTuple):
    only_in_left: GoroutineDump
    # Goroutines present in both dumps, as they appear in the right dump.
    common: GoroutineDump
    only_in_right: GoroutineDump

    def format_summary(self) -> str:
        return '\n'.join([
            'Only in left dump: %d' % len(self.only_in_left),
            'In both dumps: %d' % len(self.common),
            'Only in right dump: %d' % len(self.only_in_right),
        ]) + '\n'


def diff_dumps(left: GoroutineDump, right: GoroutineDump) -> DumpDiff:
    only_in_left: Dict[int, Goroutine] = {goroutine.identity: goroutine for goroutine in left}
    common: Dict[int, Goroutine] = {}
    only_in_right: Dict[int, Goroutine] = {}

    for goroutine in right:
        if goroutine.identity in only_in_left or goroutine.identity in common:
            only_in_left.pop(goroutine.identity, None)
            common[goroutine.identity] = goroutine
        else:
            only_in_right[goroutine.identity] = goroutine

    logging.debug(
        "Diff: %d goroutines only in left dump, %d in both, %d only in right dump",
        len(only_in_left), len(common), len(only_in_right))
    return DumpDiff(
        only_in_left=GoroutineDump.from_mapping(only_in_left),
        common=GoroutineDump.from_mapping(common),
        only_in_right=GoroutineDump.from_mapping(only_in_right))
