# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Run test stages in parallel.

Stages do their own locking, so all of them are started at once and simply
queue on the lock pool. A failed stage does not stop the others. A stage
raising an exception is an unhandled fault: stages which did not start yet are
cancelled, running ones are waited for, and the exception is raised again.
"""

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait

from hwci.outcome import PipelineResult

LOG = logging.getLogger("hwci.scheduler")


def run_stages(stages, result: PipelineResult, max_workers=None) -> PipelineResult:
    """Run all `stages` and return `result` once they are done"""
    stages = list(stages)
    if not stages:
        return result

    with ThreadPoolExecutor(max_workers=max_workers or len(stages)) as tpe:
        futures = {tpe.submit(stage): stage for stage in stages}
        done, not_done = wait(futures, return_when=FIRST_EXCEPTION)

        faults = [fut for fut in done if fut.exception() is not None]
        if faults:
            for fut in not_done:
                if fut.cancel():
                    LOG.warning("Cancelled stage %s", futures[fut].__name__)
            wait(not_done)
            stage = futures[faults[0]]
            LOG.error("Stage %s aborted the pipeline", stage.__name__)
            raise faults[0].exception()

    return result
