# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Imported by pytest at the start of every test session.

# Fixture Goals

Nothing in this test suite talks to AWS or runs the real test orchestrator.
Every command goes through `FakeExecutor`, which records the commands it is
given and answers them with scripted return codes and outputs:

    fake_executor.on("describe-capacity-reservations", stdout=["0", "2"])
    fake_executor.on("test_orchestrator.py", returncode=65)

Rules added last win. Commands matching no rule succeed with empty output.
"""

import itertools
import threading

import pytest

from hwci.locking import LockPool
from hwci.metrics import StageMetrics
from hwci.settings import Settings
from hwci.stage import StageContext, TestStageSpec
from hwci.utils import CommandReturn


class FakeExecutor:
    """Stand-in for `hwci.utils.run_cmd`"""

    def __init__(self):
        self.calls = []
        self.rules = []
        self._lock = threading.Lock()

    def on(self, pattern, returncode=0, stdout="", action=None):
        """Answer commands containing `pattern`

        :param returncode: exit status, or a callable taking the command
        :param stdout: output, or a list of outputs returned one after the
            other (the last one repeats)
        :param action: callable run with the command before answering
        """
        if isinstance(stdout, list):
            outputs = itertools.chain(stdout, itertools.repeat(stdout[-1]))
        else:
            outputs = itertools.repeat(stdout)
        self.rules.insert(0, (pattern, returncode, outputs, action))
        return self

    def commands(self, pattern):
        """Recorded commands containing `pattern`"""
        return [cmd for cmd in self.calls if pattern in cmd]

    def __call__(self, cmd, check=False, capture_output=True, **_kwargs):
        with self._lock:
            self.calls.append(cmd)
            rule = next((r for r in self.rules if r[0] in cmd), None)
            if rule is None:
                returncode, stdout, action = 0, "", None
            else:
                _, returncode, outputs, action = rule
                stdout = next(outputs)
        if action is not None:
            action(cmd)
        if callable(returncode):
            returncode = returncode(cmd)
        if check and returncode != 0:
            raise ChildProcessError(f"\n{cmd}\nReturned error code: {returncode}")
        if not capture_output:
            return CommandReturn(returncode, None, None)
        return CommandReturn(returncode, stdout, "")


@pytest.fixture
def fake_executor():
    """A command executor with plenty of ODCR capacity"""
    executor = FakeExecutor()
    executor.on("describe-capacity-reservations", stdout="16\n")
    return executor


@pytest.fixture
def sleeps():
    """Records the delays passed to `sleep` instead of sleeping"""
    return []


@pytest.fixture
def settings():
    """Settings which never make the tests wait"""
    return Settings(capacity_poll_interval=0, capacity_timeout=30)


@pytest.fixture
def context(fake_executor, sleeps, settings):
    """A stage context with a single `efa` lock pool of 4 slots"""
    return StageContext(
        locks=LockPool({"efa": 4}),
        settings=settings,
        executor=fake_executor,
        sleep=sleeps.append,
        metrics_factory=StageMetrics,
    )


@pytest.fixture
def make_spec():
    """Build a TestStageSpec with sensible defaults"""

    def _make_spec(**kwargs):
        fields = {
            "stage_name": "alinux2 c5n.18xlarge",
            "build_tag": "jenkins-PR-123",
            "os": "alinux2",
            "instance_type": "c5n.18xlarge",
            "region": "us-east-1",
            "lock_label": "efa",
            "lock_count": 2,
            "config_path": "configs/ci-efa.yaml",
            "odcr_id": "cr-0123456789abcdef0",
            "extra_args": "",
        }
        fields.update(kwargs)
        return TestStageSpec(**fields)

    return _make_spec
