# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Compose ParallelCluster cluster names for test stages.

Cluster names must be under 60 characters and cannot contain ".". Uniqueness
relies on a random suffix only; we never check against live clusters.
"""

import random
import string

from hwci import defs

NAME_CHARSET = string.ascii_letters + string.digits


def random_str(k: int):
    """Generate a random string of alphanumeric characters."""
    return "".join(random.choices(NAME_CHARSET, k=k))


def sanitize(value: str):
    """Drop the characters cluster names cannot contain"""
    return value.replace(".", "").replace("\n", "")


def strip_build_tag(build_tag: str):
    """Remove the CI prefix and any spaces from a build tag

    >>> strip_build_tag("jenkins-PR-123 ")
    'PR-123'
    """
    if build_tag.startswith(defs.CI_BUILD_TAG_PREFIX):
        build_tag = build_tag[len(defs.CI_BUILD_TAG_PREFIX) :]
    return build_tag.replace(" ", "").replace("\n", "")


def cluster_name(build_tag: str, os_: str, instance_type: str, suffix=None):
    """
    Compose the cluster name for one test stage.

    `{build_tag}-{os}-{instance_type}-{suffix}`, with the build tag cut to 28
    characters and the OS to 10 before dots are removed. If a long instance
    type still pushes the name over the limit, the build tag part gets
    shorter, so the random suffix is always kept whole.
    """
    if suffix is None:
        suffix = random_str(defs.CLUSTER_NAME_SUFFIX_LEN)
    tag = sanitize(strip_build_tag(build_tag)[: defs.BUILD_TAG_NAME_LEN])
    rest = "-" + "-".join(
        [
            sanitize(os_[: defs.OS_NAME_LEN]),
            sanitize(instance_type),
            sanitize(suffix),
        ]
    )

    room = defs.MAX_CLUSTER_NAME_LEN - len(rest)
    if room < 1:
        raise ValueError(
            f"Cannot fit a cluster name for {os_} on {instance_type} "
            f"in {defs.MAX_CLUSTER_NAME_LEN} characters"
        )
    tag = tag[:room]
    # names must start with a letter, never with the separator
    return tag + rest if tag else rest[1:]
