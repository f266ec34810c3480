# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""Send stage metrics to AWS CloudWatch

We use the aws-embedded-metrics library. Its API is stateful: setting
dimensions overrides the previous ones, and stages run concurrently, so every
stage gets its own `StageMetrics` (see `get_metrics_logger`) and flushes it
once when the stage is over.

Metrics are only sent if `AWS_EMF_NAMESPACE` is set. You can send them to
stdout with:

    AWS_EMF_NAMESPACE=$USER-test
    AWS_EMF_ENVIRONMENT=local ./tools/pipeline_hw.py ...

# References:

- https://docs.aws.amazon.com/AmazonCloudWatch/latest/monitoring/CloudWatch_Embedded_Metric_Format_Specification.html
- https://github.com/awslabs/aws-embedded-metrics-python
"""

import asyncio
import os

from aws_embedded_metrics.logger.metrics_logger_factory import create_metrics_logger


class StageMetrics:
    """Metrics of a single stage, kept in memory and optionally sent as EMF"""

    def __init__(self, logger=None):
        self.logger = logger
        self.dimensions = {}
        self.properties = {}
        self.metrics = {}

    def set_dimensions(self, dimensions: dict):
        """Dimensions of every datapoint of the stage"""
        self.dimensions = dict(dimensions)
        if self.logger:
            self.logger.set_dimensions(self.dimensions)

    def set_property(self, key, value):
        """Attach a searchable property to the EMF message"""
        self.properties[key] = value
        if self.logger:
            self.logger.set_property(key, value)

    def put_metric(self, name, value, unit):
        """Record a datapoint"""
        self.metrics.setdefault(name, {"unit": unit, "values": []})
        self.metrics[name]["values"].append(value)
        if self.logger:
            self.logger.put_metric(name, value, unit)

    def flush(self):
        """Send everything recorded so far"""
        if self.logger:
            asyncio.run(self.logger.flush())

    def to_dict(self):
        """Everything recorded, as plain data"""
        return {
            "dimensions": self.dimensions,
            "properties": self.properties,
            "metrics": self.metrics,
        }


def get_metrics_logger():
    """Get a new metrics logger object"""
    # if no metrics namespace, don't output metrics
    if "AWS_EMF_NAMESPACE" in os.environ:
        logger = create_metrics_logger()
        logger.reset_dimensions(False)
    else:
        logger = None
    return StageMetrics(logger)
