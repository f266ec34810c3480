# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Helpers to run cluster-based hardware tests from CI pipelines.

A pipeline run is a set of independent stages. Each stage takes a number of
slots from a named lock pool, cleans up stale clusters of its instance type,
waits for capacity in its on-demand capacity reservation, and then runs the
external test orchestrator once. Stage results are collected into a single
`PipelineResult` which decides the overall verdict.
"""
