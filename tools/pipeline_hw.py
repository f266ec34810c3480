#!/usr/bin/env python3
# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Run hardware tests for each OS and instance type combination

Examples:

    ./tools/pipeline_hw.py --config configs/ci.yaml --odcr cr-0123 \
        --os alinux2 --os ubuntu2004 --instance-type c5n.18xlarge \
        --lock-label efa --lock-count 2 --lock-capacity efa=4

    ./tools/pipeline_hw.py --matrix .ci/hw-matrix.yaml --region us-west-2

Exits with 0 if every stage passed, 65 if the run is unstable and 1 if any
stage failed.
"""

import sys

from hwci.pipeline import main

if __name__ == "__main__":
    sys.exit(main())
