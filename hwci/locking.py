# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Named, quantity-based locks shared by concurrently running stages.

A pool maps a label (for example "efa-p4d") to a number of slots. A stage asks
for some quantity of slots under a label and blocks until that many are free.
Waiters are not served in FIFO order: whoever gets woken up first and fits
goes first.

>>> pool = LockPool({"efa": 2})
>>> with pool.lock("efa", 2):
...     pool.available("efa")
0
>>> pool.available("efa")
2
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass

LOG = logging.getLogger("hwci.locking")


@dataclass(frozen=True)
class LockRequest:
    """A claim of `quantity` slots from the pool named `label`"""

    label: str
    quantity: int

    def __post_init__(self):
        if self.quantity < 1:
            raise ValueError(f"Lock quantity must be positive, got {self.quantity}")


class LockPool:
    """A set of named counting semaphores"""

    def __init__(self, capacities: dict):
        for label, capacity in capacities.items():
            if capacity < 1:
                raise ValueError(
                    f"Capacity of {label} must be positive, got {capacity}"
                )
        self._capacity = dict(capacities)
        self._available = dict(capacities)
        self._cond = threading.Condition()

    @property
    def labels(self):
        """Labels known to this pool"""
        return list(self._capacity)

    def capacity(self, label):
        """Total number of slots under `label`"""
        return self._capacity[label]

    def available(self, label):
        """Number of slots currently free under `label`"""
        with self._cond:
            return self._available[label]

    def _check(self, request):
        capacity = self._capacity[request.label]
        if request.quantity > capacity:
            raise ValueError(
                f"Cannot take {request.quantity} slots of {request.label}, "
                f"the pool only has {capacity}"
            )

    def acquire(self, label, quantity=1, timeout=None):
        """Take `quantity` slots of `label`, blocking until they are free"""
        request = LockRequest(label, quantity)
        self._check(request)
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            while self._available[label] < quantity:
                remaining = None
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        raise TimeoutError(
                            f"Timed out waiting for {quantity} slots of {label}"
                        )
                LOG.debug(
                    "Waiting for %s slot(s) of %s (%s free)",
                    quantity,
                    label,
                    self._available[label],
                )
                self._cond.wait(remaining)
            self._available[label] -= quantity
        LOG.debug("Acquired %s slot(s) of %s", quantity, label)
        return request

    def release(self, label, quantity=1):
        """Give back `quantity` slots of `label`"""
        request = LockRequest(label, quantity)
        with self._cond:
            if self._available[label] + quantity > self._capacity[label]:
                raise ValueError(
                    f"Releasing {quantity} slots of {label} which were not taken"
                )
            self._available[label] += request.quantity
            self._cond.notify_all()
        LOG.debug("Released %s slot(s) of %s", quantity, label)

    @contextmanager
    def lock(self, label, quantity=1, timeout=None):
        """Hold `quantity` slots of `label` for the duration of the block"""
        self.acquire(label, quantity, timeout)
        try:
            yield
        finally:
            self.release(label, quantity)
