# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Some common defines used in different modules of the pipeline helpers."""

# Prefix Jenkins puts in front of BUILD_TAG
CI_BUILD_TAG_PREFIX = "jenkins-"

# ParallelCluster requires cluster names under 60 characters
MAX_CLUSTER_NAME_LEN = 60
BUILD_TAG_NAME_LEN = 28
OS_NAME_LEN = 10
CLUSTER_NAME_SUFFIX_LEN = 8

# The orchestrator exits with this status when tests ran but flagged issues
UNSTABLE_EXIT_CODE = 65

# Instance types getting ICE'd within an ODCR when launched back to back,
# mapped to the delay (in seconds) we wait before launching them.
ICE_MITIGATION_DELAYS = {
    "p3dn.24xlarge": 150,
}

# Default locations, relative to the job workspace
DEFAULT_VENV_DIR = "venv"
DEFAULT_ORCHESTRATOR_DIR = "PortaFiducia"
DEFAULT_OUTPUTS_DIR = "outputs"

# Orchestrator scripts, relative to the orchestrator checkout
ORCHESTRATOR_SCRIPT = "tests/test_orchestrator.py"
DELETE_CLUSTER_SCRIPT = "scripts/delete_manual_cluster.py"

# Stable orchestrator tarball in S3
ARTIFACT_BUCKET_TMPL = "libfabric-ci-{account_id}-us-west-2"
ARTIFACT_KEY = "portafiducia/portafiducia.tar.gz"
ARTIFACT_TMP_PATH = "/tmp/portafiducia.tar.gz"

# Capacity reservation polling, in seconds
DEFAULT_CAPACITY_POLL_INTERVAL = 60
DEFAULT_CAPACITY_TIMEOUT = 4 * 60 * 60
