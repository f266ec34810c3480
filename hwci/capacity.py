# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Get a region ready before launching a cluster in it.

Before a stage launches its cluster we:

1. Try to delete any cluster of the same instance type left behind in the
   region. Milestones send multiple SIGTERMs followed by a SIGKILL after 20s,
   so an aborted stage never gets to delete its own cluster. The next stage
   on the same instance type cleans up after it.
2. Wait until the on-demand capacity reservation (ODCR) has room for all the
   instances the stage needs.
3. For instance types known to get ICE'd when launched back to back within an
   ODCR, wait some more.

There is a window between 2. and the actual launch where another stage on the
same instance type can take the capacity we just saw. Nothing here prevents
that; the lock pool is what keeps it rare.
"""

import logging
import time

from tenacity import (
    RetryError,
    Retrying,
    retry_if_result,
    stop_after_delay,
    wait_fixed,
)

from hwci import aws
from hwci.cluster_name import sanitize
from hwci.settings import Settings
from hwci.utils import in_venv, run_cmd

LOG = logging.getLogger("hwci.capacity")


class CapacityWaitTimeout(Exception):
    """The capacity reservation never had enough room for the stage."""

    def __init__(self, odcr_id, region, required, available):
        super().__init__(
            f"ODCR {odcr_id} in {region} still has {available} instance(s) "
            f"available, {required} required"
        )
        self.odcr_id = odcr_id
        self.region = region
        self.required = required
        self.available = available


class CapacityGatekeeper:
    """Cleanup, capacity wait and ICE mitigation for one cluster launch"""

    def __init__(
        self, settings: Settings = None, executor=run_cmd, sleep=time.sleep
    ):
        self.settings = settings or Settings()
        self.executor = executor
        self.sleep = sleep

    def kill_all_clusters(self, instance_type, region):
        """Best effort deletion of every cluster running `instance_type` in `region`"""
        pattern = f"*{sanitize(instance_type)}*"
        cmd = in_venv(
            self.settings.venv_dir,
            f"{self.settings.delete_cluster_script}"
            f" --cluster-name '{pattern}' --region {region}",
        )
        ret = self.executor(cmd, check=False)
        if ret.returncode != 0:
            LOG.warning(
                "Could not clean up clusters matching %s in %s (exit status %s)",
                pattern,
                region,
                ret.returncode,
            )
        return ret.returncode

    def wait_for_odcr_capacity(self, region, instance_count, odcr_id):
        """Block until the ODCR has at least `instance_count` instances available"""
        LOG.info(
            "Waiting for %s instance(s) in ODCR %s (%s)",
            instance_count,
            odcr_id,
            region,
        )
        retrying = Retrying(
            retry=retry_if_result(lambda available: available < instance_count),
            stop=stop_after_delay(self.settings.capacity_timeout),
            wait=wait_fixed(self.settings.capacity_poll_interval),
            sleep=self.sleep,
        )
        try:
            available = retrying(
                aws.get_available_capacity, odcr_id, region, executor=self.executor
            )
        except RetryError as err:
            raise CapacityWaitTimeout(
                odcr_id, region, instance_count, err.last_attempt.result()
            ) from err
        LOG.info("ODCR %s has %s instance(s) available", odcr_id, available)
        return available

    def mitigate_ice(self, instance_type):
        """Wait before launching instance types which get ICE'd back to back"""
        delay = self.settings.ice_delay(instance_type)
        if delay:
            LOG.info("Sleeping %ss before launching %s", delay, instance_type)
            self.sleep(delay)
        return delay or 0

    def prepare(self, instance_type, region, instance_count, odcr_id):
        """Run cleanup, capacity wait and ICE mitigation, in this order"""
        self.kill_all_clusters(instance_type, region)
        self.wait_for_odcr_capacity(region, instance_count, odcr_id)
        self.mitigate_ice(instance_type)
