# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Stage results and the overall verdict of a pipeline run.

Every stage of a run records its result into the same `PipelineResult`. Once
all stages finished, `PipelineResult.verdict()` decides the result of the run:
failed if any stage failed, unstable if any stage (or a setup step) was
unstable, successful otherwise.
"""

import enum
import threading
from dataclasses import dataclass
from typing import List, Optional

from hwci import defs


class Outcome(enum.IntEnum):
    """Result of a stage or of a whole run, from best to worst"""

    SUCCESS = 0
    UNSTABLE = 1
    FAILURE = 2

    @classmethod
    def from_returncode(cls, returncode: int):
        """Classify the exit status of the test orchestrator

        >>> Outcome.from_returncode(65).name
        'UNSTABLE'
        """
        if returncode == 0:
            return cls.SUCCESS
        if returncode == defs.UNSTABLE_EXIT_CODE:
            return cls.UNSTABLE
        return cls.FAILURE


@dataclass(frozen=True)
class StageResult:
    """What happened in a single stage"""

    stage_name: str
    outcome: Outcome
    returncode: Optional[int] = None
    cluster_name: Optional[str] = None
    reason: Optional[str] = None
    duration: float = 0.0


class PipelineResult:
    """Thread-safe collection of stage results for one pipeline run"""

    def __init__(self):
        self._lock = threading.Lock()
        self._stages: List[StageResult] = []
        self._warnings: List[str] = []

    def record(self, result: StageResult):
        """Add the result of a finished stage"""
        with self._lock:
            self._stages.append(result)
        return result

    def mark_unstable(self, reason: str):
        """Flag the run as unstable without attributing it to a stage"""
        with self._lock:
            self._warnings.append(reason)

    @property
    def stages(self):
        """Results recorded so far, in completion order"""
        with self._lock:
            return list(self._stages)

    @property
    def warnings(self):
        """Reasons the run was flagged unstable outside of stages"""
        with self._lock:
            return list(self._warnings)

    @property
    def build_ok(self):
        """False as soon as one stage failed"""
        return all(stage.outcome != Outcome.FAILURE for stage in self.stages)

    def stage(self, stage_name):
        """Return the result of the stage with the given name"""
        for result in self.stages:
            if result.stage_name == stage_name:
                return result
        raise KeyError(stage_name)

    def verdict(self) -> Outcome:
        """Reduce all stage results to the result of the run"""
        worst = max((stage.outcome for stage in self.stages), default=Outcome.SUCCESS)
        if self.warnings:
            worst = max(worst, Outcome.UNSTABLE)
        return Outcome(worst)

    def summary(self):
        """A human readable report of the run"""
        lines = [
            f"{stage.outcome.name:<8} {stage.stage_name}"
            + (f" [exit {stage.returncode}]" if stage.returncode is not None else "")
            + (f" {stage.reason}" if stage.reason else "")
            for stage in sorted(self.stages, key=lambda s: s.stage_name)
        ]
        lines += [f"UNSTABLE {warning}" for warning in self.warnings]
        lines.append(f"Pipeline result: {self.verdict().name}")
        return "\n".join(lines)
