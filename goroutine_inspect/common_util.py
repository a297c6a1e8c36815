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

import logging
import os

from typing import Optional


LOG_FORMAT = "%(asctime)s [%(filename)s:%(lineno)d %(levelname)s] %(message)s"

g_init_logging_verbose_value: Optional[bool] = None


def init_logging(verbose: bool) -> None:
    global g_init_logging_verbose_value

    if g_init_logging_verbose_value is not None:
        if verbose == g_init_logging_verbose_value:
            return
        logging.warning(
            f"init_logging() has already been called with verbose={g_init_logging_verbose_value}, "
            f"ignoring a subsequent call with verbose={verbose}"
        )
        return

    g_init_logging_verbose_value = verbose

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=LOG_FORMAT)


def get_env_var_with_default(env_var_name: str, default_value: str) -> str:
    """
    Returns the value of the given environment variable, treating an empty value as unset.

    >>> get_env_var_with_default('GOROUTINE_INSPECT_SURELY_UNSET_VAR', 'auto')
    'auto'
    """
    value = os.environ.get(env_var_name)
    if value is None or not value.strip():
        return default_value
    return value.strip()
