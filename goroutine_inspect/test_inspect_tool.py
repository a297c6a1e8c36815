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

import os
import pathlib

from typing import List

import pytest

from goroutine_inspect.dump_loader import load_dump
from goroutine_inspect.inspect_tool import GoroutineInspectTool, Operation


TEST_DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'test_data')
SAMPLE_DUMP_PATH = os.path.join(TEST_DATA_DIR, 'sample_dump.txt')
LATER_DUMP_PATH = os.path.join(TEST_DATA_DIR, 'sample_dump_later.txt')


def run_tool(args: List[str]) -> GoroutineInspectTool:
    tool = GoroutineInspectTool()
    tool.run(args)
    return tool


def test_summary_by_default(capsys: pytest.CaptureFixture) -> None:
    tool = run_tool([SAMPLE_DUMP_PATH])
    assert tool.args.operations == [Operation(name='summary', argument=None)]
    out = capsys.readouterr().out
    assert out.startswith('# of goroutines: 6\n\n')
    assert '   chan receive: 3\n' in out


def test_operations_are_applied_in_order(capsys: pytest.CaptureFixture) -> None:
    tool = run_tool([
        SAMPLE_DUMP_PATH,
        '--summary',
        '--dedup',
        '--keep', 'dups > 1',
        '--summary',
        '--show',
    ])
    assert [operation.name for operation in tool.args.operations] == [
        'summary', 'dedup', 'keep', 'summary', 'show']
    assert tool.args.operations[2].argument == 'dups > 1'
    assert tool.dump.identities() == [17]

    out = capsys.readouterr().out
    first_summary_pos = out.index('# of goroutines: 6\n')
    second_summary_pos = out.index('# of goroutines: 1\n')
    show_pos = out.index('goroutine ~ [chan receive, ~ minutes]: 3 times: [17, 18, 19]\n')
    assert first_summary_pos < second_summary_pos < show_pos


def test_delete_then_sort(capsys: pytest.CaptureFixture) -> None:
    tool = run_tool([SAMPLE_DUMP_PATH, '--delete', 'state == "chan receive"', '--sort'])
    assert tool.dump.identities() == [1, 23, 24]
    assert capsys.readouterr().out == ''


def test_search_window(capsys: pytest.CaptureFixture) -> None:
    run_tool([
        SAMPLE_DUMP_PATH,
        '--search', 'contains(trace, "main.worker")',
        '--offset', '1',
        '--limit', '1',
        '--color', 'never',
    ])
    out = capsys.readouterr().out
    assert out.startswith('Search with offset 1 and limit 1.\n\n')
    assert 'goroutine 18 [chan receive, 12 minutes]:\n' in out
    assert 'goroutine 17 ' not in out
    assert 'goroutine 19 ' not in out


def test_search_limit_from_env(
        capsys: pytest.CaptureFixture, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv('GOROUTINE_INSPECT_SEARCH_LIMIT', '2')
    tool = run_tool([SAMPLE_DUMP_PATH, '--search', 'true'])
    assert tool.args.limit == 2
    assert capsys.readouterr().out.startswith('Search with offset 0 and limit 2.\n\n')


def test_colored_output(capsys: pytest.CaptureFixture) -> None:
    run_tool([SAMPLE_DUMP_PATH, '--color', 'always', '--dedup', '--keep', 'id == 17', '--show'])
    out = capsys.readouterr().out
    assert out.startswith('\x1b[34mgoroutine ~ [chan receive, ~ minutes]:\x1b[m')
    assert '\x1b[32m[17, 18, 19]\x1b[m' in out


def test_save(tmp_path: pathlib.Path) -> None:
    output_path = str(tmp_path / 'workers.txt')
    run_tool([SAMPLE_DUMP_PATH, '--keep', 'contains(trace, "main.worker")', '--save', output_path])
    assert load_dump(output_path).identities() == [17, 18, 19]


def test_diff(capsys: pytest.CaptureFixture, tmp_path: pathlib.Path) -> None:
    prefix = str(tmp_path / 'diff')
    run_tool([SAMPLE_DUMP_PATH, '--diff', LATER_DUMP_PATH, '--diff-output-prefix', prefix])
    assert capsys.readouterr().out == (
        'Only in left dump: 2\n'
        'In both dumps: 4\n'
        'Only in right dump: 2\n')
    assert load_dump(prefix + '.only_left').identities() == [17, 23]
    assert load_dump(prefix + '.common').identities() == [1, 18, 19, 24]
    assert load_dump(prefix + '.only_right').identities() == [31, 32]


@pytest.mark.parametrize("args", [
    ['--keep', 'contains(trace)'],
    ['--delete', 'state =='],
    ['--keep', 'lines'],
    ['--search', 'nonexistent > 1'],
    ['--diff', os.path.join(TEST_DATA_DIR, 'no_such_dump.txt')],
])
def test_user_friendly_errors(args: List[str], capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_tool([SAMPLE_DUMP_PATH] + args)
    assert excinfo.value.code == 1


def test_missing_dump_file(tmp_path: pathlib.Path) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_tool([str(tmp_path / 'missing.txt')])
    assert excinfo.value.code == 1


@pytest.mark.parametrize("args", [
    ['--offset', '-1', '--search', 'true'],
    ['--limit', '-5', '--search', 'true'],
    ['--color', 'sometimes'],
    ['--diff-output-prefix', 'out'],
    ['--keep'],
])
def test_invalid_arguments(args: List[str], capsys: pytest.CaptureFixture) -> None:
    with pytest.raises(SystemExit) as excinfo:
        run_tool([SAMPLE_DUMP_PATH] + args)
    assert excinfo.value.code == 2
