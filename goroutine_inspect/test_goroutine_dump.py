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

import io
import os
import pathlib

from typing import List

import pytest

from goroutine_inspect.dump_loader import load_dump
from goroutine_inspect.errors import ArityError, ExpressionSyntaxError
from goroutine_inspect.goroutine import Goroutine, parse_metadata_line
from goroutine_inspect.goroutine_dump import DumpSummary, GoroutineDump


TEST_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'test_data')


def make_goroutine(header: str, lines: List[str]) -> Goroutine:
    goroutine = parse_metadata_line(header)
    for line in lines:
        goroutine.add_line(line)
    goroutine.freeze()
    return goroutine


@pytest.fixture
def sample_dump() -> GoroutineDump:
    return load_dump(os.path.join(TEST_DATA_DIR, 'sample_dump.txt'))


def test_dedupe_ignores_argument_values() -> None:
    dump = GoroutineDump([
        make_goroutine('goroutine 1 [select]:', ['main.loop(0x1, 0x2)', '\tmain.go:5 +0x1']),
        make_goroutine('goroutine 2 [select]:', ['main.loop(0xabc, 0xdef)', '\tmain.go:5 +0x1']),
    ])
    assert dump.dedupe() == 1
    assert len(dump) == 1
    representative = dump.goroutines[0]
    assert representative.identity == 1
    assert representative.duplicate_identities == [1, 2]


def test_dedupe_sample_dump(sample_dump: GoroutineDump) -> None:
    assert sample_dump.identities() == [1, 17, 18, 19, 23, 24]
    assert sample_dump.dedupe() == 2
    assert sample_dump.identities() == [1, 17, 23, 24]
    assert [len(goroutine.duplicate_identities) for goroutine in sample_dump] == [1, 3, 1, 1]
    assert sample_dump.goroutines[1].duplicate_identities == [17, 18, 19]


def test_dedupe_is_idempotent(sample_dump: GoroutineDump) -> None:
    sample_dump.dedupe()
    first_pass = [
        (goroutine.identity, goroutine.duplicate_identities) for goroutine in sample_dump]
    assert sample_dump.dedupe() == 0
    assert [
        (goroutine.identity, goroutine.duplicate_identities) for goroutine in sample_dump
    ] == first_pass


def test_dedupe_does_not_modify_shared_goroutines(sample_dump: GoroutineDump) -> None:
    copied = sample_dump.copy()
    sample_dump.dedupe()
    assert all(goroutine.duplicate_identities == [] for goroutine in copied)
    assert len(copied) == 6


def test_dedupe_keeps_first_goroutine_of_each_group() -> None:
    dump = GoroutineDump([
        make_goroutine('goroutine 9 [select]:', ['main.a(0x1)']),
        make_goroutine('goroutine 4 [select]:', ['main.b(0x1)']),
        make_goroutine('goroutine 2 [select]:', ['main.a(0x2)']),
    ])
    dump.dedupe()
    assert dump.identities() == [9, 4]
    assert dump.goroutines[0].duplicate_identities == [2, 9]
    assert dump.goroutines[1].duplicate_identities == [4]


def test_dups_variable_after_dedupe(sample_dump: GoroutineDump) -> None:
    sample_dump.dedupe()
    assert sample_dump.keep('dups > 1') == (3, 1)
    assert sample_dump.identities() == [17]


@pytest.mark.parametrize("cond", [
    'state == "chan receive"',
    'duration > 5',
    'contains(trace, "server.go")',
    'false',
    'true',
])
def test_keep_and_delete_are_complementary(sample_dump: GoroutineDump, cond: str) -> None:
    kept = sample_dump.copy()
    deleted = sample_dump.copy()
    num_removed, num_kept = kept.keep(cond)
    assert (num_removed, num_kept) == (6 - len(kept), len(kept))
    deleted.delete(cond)

    assert sorted(kept.identities() + deleted.identities()) == sample_dump.identities()

    # Deleting the same goroutines from what was kept leaves nothing.
    kept.delete(cond)
    assert len(kept) == 0


def test_keep_state_and_duration() -> None:
    dump = GoroutineDump([
        make_goroutine('goroutine 1 [running, 10 minutes]:', []),
        make_goroutine('goroutine 2 [running, 2 minutes]:', []),
        make_goroutine('goroutine 3 [idle, 10 minutes]:', []),
    ])
    dump.keep('state == "running" && duration > 5')
    assert dump.identities() == [1]


def test_filter_preserves_order(sample_dump: GoroutineDump) -> None:
    sample_dump.delete('id == 18 || id == 23')
    assert sample_dump.identities() == [1, 17, 19, 24]


def test_failed_filter_leaves_dump_unchanged(sample_dump: GoroutineDump) -> None:
    with pytest.raises(ArityError):
        sample_dump.delete('contains(trace)')
    with pytest.raises(ArityError):
        sample_dump.keep('contains(trace)')
    with pytest.raises(ExpressionSyntaxError):
        sample_dump.keep('state ==')
    assert sample_dump.identities() == [1, 17, 18, 19, 23, 24]


def test_copy(sample_dump: GoroutineDump) -> None:
    copied = sample_dump.copy('state == "chan receive"')
    assert copied.identities() == [17, 18, 19]
    assert copied.goroutines[0] is sample_dump.goroutines[1]
    assert len(sample_dump) == 6

    everything = sample_dump.copy()
    everything.delete('true')
    assert len(everything) == 0
    assert len(sample_dump) == 6


def test_sort() -> None:
    dump = GoroutineDump([
        make_goroutine('goroutine 30 [select]:', []),
        make_goroutine('goroutine 4 [select]:', []),
        make_goroutine('goroutine 17 [select]:', []),
    ])
    dump.sort()
    assert dump.identities() == [4, 17, 30]


def test_summary(sample_dump: GoroutineDump) -> None:
    summary = sample_dump.summary()
    assert summary == DumpSummary(
        total=6,
        state_counts=[
            ('IO wait', 1),
            ('chan receive', 3),
            ('running', 1),
            ('sync.Mutex.Lock', 1),
        ])
    assert summary.format() == '\n'.join([
        '# of goroutines: 6',
        '',
        '        IO wait: 1',
        '   chan receive: 3',
        '        running: 1',
        'sync.Mutex.Lock: 1',
    ]) + '\n'


def test_summary_of_empty_dump() -> None:
    summary = GoroutineDump().summary()
    assert summary.total == 0
    assert summary.format() == '# of goroutines: 0\n'


def test_search_window(sample_dump: GoroutineDump) -> None:
    output = io.StringIO()
    shown = sample_dump.search('duration > 0', offset=1, limit=2, output=output)
    assert [goroutine.identity for goroutine in shown] == [18, 19]
    text = output.getvalue()
    assert text.startswith('Search with offset 1 and limit 2.\n\n')
    assert 'goroutine 18 [chan receive, 12 minutes]:\n' in text
    assert 'goroutine 19 [chan receive, 3 minutes]:\n' in text
    assert 'goroutine 17 ' not in text
    assert 'goroutine 23 ' not in text


def test_search_window_past_the_end(sample_dump: GoroutineDump) -> None:
    output = io.StringIO()
    assert sample_dump.search('true', offset=10, limit=5, output=output) == []
    assert output.getvalue() == 'Search with offset 10 and limit 5.\n\n'
    assert len(sample_dump.search('true', limit=0, output=io.StringIO())) == 0
    assert len(sample_dump.search('true', output=io.StringIO())) == 6


def test_search_rejects_negative_window(sample_dump: GoroutineDump) -> None:
    with pytest.raises(ValueError):
        sample_dump.search('true', offset=-1, output=io.StringIO())
    with pytest.raises(ValueError):
        sample_dump.search('true', limit=-1, output=io.StringIO())


def test_show_deduped(sample_dump: GoroutineDump) -> None:
    sample_dump.dedupe()
    output = io.StringIO()
    sample_dump.show(output)
    text = output.getvalue()
    assert 'goroutine ~ [chan receive, ~ minutes]: 3 times: [17, 18, 19]\n' in text
    assert 'main.worker(...)\n' in text
    assert 'goroutine 23 [sync.Mutex.Lock, 7 minutes]:\n' in text
    assert 'sync.runtime_SemacquireMutex(0xc0000a4014, 0x0, 0x1)\n' in text
    assert text.endswith('+0x10b\n\n')


def test_save_and_load(sample_dump: GoroutineDump, tmp_path: pathlib.Path) -> None:
    output_path = str(tmp_path / 'saved.txt')
    sample_dump.keep('duration > 5')
    sample_dump.save(output_path)

    loaded = load_dump(output_path)
    assert loaded.identities() == [17, 18, 23]
    assert [goroutine.fingerprint for goroutine in loaded] == \
        [goroutine.fingerprint for goroutine in sample_dump]
    assert [goroutine.line_count for goroutine in loaded] == [5, 5, 9]


def test_save_to_missing_directory(sample_dump: GoroutineDump, tmp_path: pathlib.Path) -> None:
    with pytest.raises(OSError):
        sample_dump.save(str(tmp_path / 'no_such_dir' / 'saved.txt'))


def test_add_and_iterate() -> None:
    dump = GoroutineDump()
    dump.add(make_goroutine('goroutine 3 [select]:', []))
    dump.add(make_goroutine('goroutine 1 [select]:', []))
    assert len(dump) == 2
    assert [goroutine.identity for goroutine in dump] == [3, 1]
    assert repr(dump) == 'GoroutineDump(2 goroutines)'
