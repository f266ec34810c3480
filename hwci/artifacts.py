# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Fetch and install the test orchestrator (PortaFiducia).

The stable orchestrator tarball lives in an S3 bucket of the account running
the pipeline:

    s3://libfabric-ci-<account id>-us-west-2/portafiducia/portafiducia.tar.gz
"""

import logging

from hwci import aws, defs
from hwci.outcome import PipelineResult
from hwci.utils import run_cmd
from hwci.with_filelock import with_filelock

LOG = logging.getLogger("hwci.artifacts")


def get_download_path(executor=run_cmd):
    """S3 path of the stable orchestrator tarball"""
    account_id = aws.get_account_id(executor)
    bucket = defs.ARTIFACT_BUCKET_TMPL.format(account_id=account_id)
    return f"s3://{bucket}/{defs.ARTIFACT_KEY}"


@with_filelock
def download_and_extract(output_dir, result: PipelineResult, executor=run_cmd):
    """
    Download the orchestrator tarball from S3 and extract it to `output_dir`.

    A failure flags the run unstable but does not raise: a previously
    extracted copy may still be usable.
    """
    tmp_path = defs.ARTIFACT_TMP_PATH
    try:
        download_path = get_download_path(executor)
    except ChildProcessError as err:
        LOG.error("Could not get the orchestrator download path: %s", err)
        result.mark_unstable("Failed to download and extract PortaFiducia")
        return False

    ret = executor(
        f"mkdir -p {output_dir} && aws s3 cp {download_path} {tmp_path} && "
        f"tar xf {tmp_path} -C {output_dir}",
        check=False,
    )
    if ret.returncode != 0:
        LOG.error("Downloading %s exited with status %s", download_path, ret.returncode)
        result.mark_unstable("Failed to download and extract PortaFiducia")
        return False
    return True


@with_filelock
def install(
    venv_dir=defs.DEFAULT_VENV_DIR,
    orchestrator_dir=defs.DEFAULT_ORCHESTRATOR_DIR,
    executor=run_cmd,
):
    """Install the orchestrator in a (new) virtual environment."""
    cmds = [
        f"python3 -m venv {venv_dir}",
        f". {venv_dir}/bin/activate",
        "pip install --upgrade pip",
        "pip install --upgrade awscli",
        f"pip install -e {orchestrator_dir}",
    ]
    return executor(" && ".join(cmds), check=True)
