# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Simple decorator so that only one process on the host is running the
decorated function at any one time.

Several pipeline jobs can share a build host and the same workspace root, for
example when downloading and installing the test orchestrator.
"""


import functools
import tempfile
from pathlib import Path

from filelock import FileLock


def with_filelock(func):
    """Decorator so that only one process is running the decorated function at
    any one time.
    """

    tmp_dir = Path(tempfile.gettempdir())

    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        lock_path = tmp_dir / f"hwci-{func.__module__}.{func.__name__}.lock"
        with FileLock(lock_path):
            return func(*args, **kwargs)

    return wrapper
