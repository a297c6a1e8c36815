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

from typing import List, TextIO


COLOR_MODES: List[str] = ['auto', 'always', 'never']


class Colors(object):
    """ ANSI color codes. """

    RED = "\x1b[31m"
    GREEN = "\x1b[32m"
    BLUE = "\x1b[34m"
    RESET = "\x1b[m"


def colorize(text: str, color: str, enabled: bool) -> str:
    """
    >>> colorize('goroutine 1', Colors.BLUE, enabled=False)
    'goroutine 1'
    >>> colorize('2', Colors.RED, enabled=True) == Colors.RED + '2' + Colors.RESET
    True
    """
    if not enabled:
        return text
    return color + text + Colors.RESET


def should_colorize(mode: str, stream: TextIO) -> bool:
    if mode == 'always':
        return True
    if mode == 'never':
        return False
    if mode != 'auto':
        raise ValueError("Unknown color mode: %s, expected one of %s" % (mode, COLOR_MODES))
    isatty = getattr(stream, 'isatty', None)
    return isatty is not None and isatty()
