# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Run the external test orchestrator once and classify how it went."""

import logging
from collections import namedtuple

from hwci.outcome import Outcome
from hwci.utils import in_venv

LOG = logging.getLogger("hwci.orchestrator")

InvocationResult = namedtuple("InvocationResult", "returncode outcome")


def junit_xml_path(outputs_dir, cluster_name):
    """Where the orchestrator writes the JUnit report of a cluster"""
    return f"{outputs_dir}/{cluster_name}.xml"


def orchestrator_args(spec, cluster_name, outputs_dir):
    """Command line arguments of `test_orchestrator.py` for a test stage"""
    parts = [
        f"--config {spec.config_path}",
        f"--os {spec.os}",
        f"--odcr {spec.odcr_id}",
        f"--instance-type {spec.instance_type}",
        f"--instance-count {spec.lock_count}",
        f"--region {spec.region}",
        f"--cluster-name {cluster_name}",
    ]
    if spec.extra_args:
        parts.append(spec.extra_args)
    parts.append(f"--junit-xml {junit_xml_path(outputs_dir, cluster_name)}")
    return " ".join(parts)


def orchestrator_cmd(spec, cluster_name, settings):
    """Full shell command running the orchestrator inside its virtualenv"""
    args = orchestrator_args(spec, cluster_name, settings.outputs_dir)
    return in_venv(settings.venv_dir, f"{settings.orchestrator_script} {args}")


def invoke(spec, cluster_name, context) -> InvocationResult:
    """
    Run the test orchestrator for `spec` on the cluster `cluster_name`.

    The orchestrator output is not captured, it goes straight to the pipeline
    log. Only its exit status is looked at:

    - 0: success
    - 65: tests ran but flagged issues; the stage is unstable
    - anything else: the stage failed
    """
    cmd = orchestrator_cmd(spec, cluster_name, context.settings)
    LOG.info("[%s] Running test orchestrator on %s", spec.stage_name, cluster_name)
    ret = context.executor(cmd, check=False, capture_output=False)
    outcome = Outcome.from_returncode(ret.returncode)
    if outcome == Outcome.UNSTABLE:
        LOG.warning(
            "[%s] Scripts exited with status %s", spec.stage_name, ret.returncode
        )
    elif outcome == Outcome.FAILURE:
        LOG.error("[%s] Scripts exited with status %s", spec.stage_name, ret.returncode)
    return InvocationResult(ret.returncode, outcome)
