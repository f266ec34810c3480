# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Generate test stages which run the test orchestrator under a lock.

A stage is a zero argument callable. When called, it queues until it gets
`lock_count` slots of `lock_label`, then runs the orchestrator once and gives
the slots back, whatever happened in between. `lock_count` is also the number
of instances the stage launches, so the lock pool capacity of a label should
match the instances available to it.
"""

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Callable

from hwci import orchestrator
from hwci.capacity import CapacityGatekeeper, CapacityWaitTimeout
from hwci.cluster_name import cluster_name as make_cluster_name
from hwci.locking import LockPool
from hwci.metrics import get_metrics_logger
from hwci.outcome import Outcome, PipelineResult, StageResult
from hwci.settings import Settings
from hwci.utils import run_cmd

LOG = logging.getLogger("hwci.stage")

# Errors which fail a stage without stopping its siblings
STAGE_ERRORS = (ChildProcessError, CapacityWaitTimeout)


@dataclass(frozen=True)
class TestStageSpec:
    """
    Parameters of one test stage.

    :param stage_name: the name of the stage
    :param build_tag: the BUILD_TAG env generated by Jenkins
    :param os: the operating system for the test stage
    :param instance_type: the instance type for the test stage
    :param region: the (default) aws region where the tests are run
    :param lock_label: the label of the lockable resources
    :param lock_count: the quantity of the lockable resources, and the number of instances
    :param config_path: the orchestrator config file
    :param odcr_id: the on demand capacity reservation to create instances in
    :param extra_args: additional arguments passed to the orchestrator
    """

    __test__ = False

    stage_name: str
    build_tag: str
    os: str
    instance_type: str
    region: str
    lock_label: str
    lock_count: int
    config_path: str
    odcr_id: str
    extra_args: str = ""

    def __post_init__(self):
        if self.lock_count < 1:
            raise ValueError(
                f"{self.stage_name}: lock_count must be positive, got {self.lock_count}"
            )


@dataclass
class StageContext:
    """What stages of a pipeline run share"""

    locks: LockPool
    result: PipelineResult = field(default_factory=PipelineResult)
    settings: Settings = field(default_factory=Settings)
    executor: Callable = run_cmd
    sleep: Callable = time.sleep
    metrics_factory: Callable = get_metrics_logger

    def gatekeeper(self):
        """Capacity gatekeeper using this context's executor and settings"""
        return CapacityGatekeeper(self.settings, self.executor, self.sleep)


@contextmanager
def stage_scope(spec: TestStageSpec, metrics):
    """Report the beginning, end and duration of a stage"""
    metrics.set_dimensions(
        {"instance_type": spec.instance_type, "os": spec.os, "region": spec.region}
    )
    metrics.set_property("stage", spec.stage_name)
    LOG.info("[%s] Stage started", spec.stage_name)
    start = time.monotonic()
    try:
        yield
    finally:
        duration = time.monotonic() - start
        LOG.info("[%s] Stage finished in %.1fs", spec.stage_name, duration)
        metrics.put_metric("stage_duration", duration, "Seconds")
        metrics.flush()


def _failure_reason(err):
    """Last non-empty line of an error message"""
    lines = [line for line in str(err).splitlines() if line.strip()]
    return lines[-1] if lines else type(err).__name__


def run_test_orchestrator_once(spec: TestStageSpec, context: StageContext):
    """Get the region ready, then run the orchestrator on a fresh cluster name"""
    context.gatekeeper().prepare(
        spec.instance_type, spec.region, spec.lock_count, spec.odcr_id
    )
    cluster_name = make_cluster_name(spec.build_tag, spec.os, spec.instance_type)
    return cluster_name, orchestrator.invoke(spec, cluster_name, context)


def build_stage(
    spec: TestStageSpec, context: StageContext
) -> Callable[[], StageResult]:
    """
    Generate a single test stage that runs the test orchestrator with the given
    parameters.

    The returned callable records its `StageResult` into `context.result` and
    returns it. Expected failures (a failing command, no capacity) fail the
    stage only. Anything else is raised after the lock has been released.
    """

    def stage():
        metrics = context.metrics_factory()
        start = time.monotonic()
        with stage_scope(spec, metrics):
            with context.locks.lock(spec.lock_label, spec.lock_count):
                try:
                    cluster_name, ret = run_test_orchestrator_once(spec, context)
                except STAGE_ERRORS as err:
                    LOG.error("[%s] %s", spec.stage_name, err)
                    result = StageResult(
                        spec.stage_name,
                        Outcome.FAILURE,
                        reason=_failure_reason(err),
                        duration=time.monotonic() - start,
                    )
                else:
                    metrics.put_metric("exit_status", ret.returncode, "None")
                    result = StageResult(
                        spec.stage_name,
                        ret.outcome,
                        returncode=ret.returncode,
                        cluster_name=cluster_name,
                        duration=time.monotonic() - start,
                    )
        return context.result.record(result)

    stage.__name__ = spec.stage_name
    return stage
