# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Thin wrappers around the AWS CLI.

Every call goes through a command executor with the signature of
`hwci.utils.run_cmd`, so that tests can replace it.
"""

import re

from hwci.utils import run_cmd


def get_account_id(executor=run_cmd):
    """Return the AWS account id of the caller, digits only"""
    _, stdout, _ = executor(
        "aws sts get-caller-identity --query Account --output text", check=True
    )
    account_id = re.sub(r"\D", "", stdout)
    if not account_id:
        raise ChildProcessError(f"Could not parse an AWS account id from {stdout!r}")
    return account_id


def get_available_capacity(odcr_id, region, executor=run_cmd):
    """
    Return how many instances can still be launched in an on-demand capacity
    reservation.

    https://docs.aws.amazon.com/cli/latest/reference/ec2/describe-capacity-reservations.html
    """
    _, stdout, _ = executor(
        "aws ec2 describe-capacity-reservations"
        f" --region {region}"
        f" --capacity-reservation-ids {odcr_id}"
        " --query 'CapacityReservations[0].AvailableInstanceCount'"
        " --output text",
        check=True,
    )
    try:
        return int(stdout.strip())
    except ValueError as err:
        raise ChildProcessError(
            f"Unexpected capacity for reservation {odcr_id} in {region}: {stdout!r}"
        ) from err
