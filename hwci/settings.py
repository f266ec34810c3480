# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Per-run tunables of the pipeline helpers.

Defaults come from `hwci.defs`. The environment of the CI job can override
them, and the pipeline driver overrides them again with its command line.
"""

import os
from dataclasses import dataclass, replace

from hwci import defs


@dataclass(frozen=True)
class Settings:
    """Where things live and how long we are willing to wait"""

    venv_dir: str = defs.DEFAULT_VENV_DIR
    orchestrator_dir: str = defs.DEFAULT_ORCHESTRATOR_DIR
    outputs_dir: str = defs.DEFAULT_OUTPUTS_DIR
    capacity_poll_interval: float = defs.DEFAULT_CAPACITY_POLL_INTERVAL
    capacity_timeout: float = defs.DEFAULT_CAPACITY_TIMEOUT
    # (instance type, seconds) pairs
    ice_delays: tuple = tuple(defs.ICE_MITIGATION_DELAYS.items())

    @classmethod
    def from_env(cls, environ=None):
        """Build settings, overriding defaults with HWCI_* environment variables

        >>> Settings.from_env({"HWCI_VENV_DIR": "/tmp/venv"}).venv_dir
        '/tmp/venv'
        """
        if environ is None:
            environ = os.environ
        overrides = {}
        for name, var, conv in [
            ("venv_dir", "HWCI_VENV_DIR", str),
            ("orchestrator_dir", "HWCI_ORCHESTRATOR_DIR", str),
            ("outputs_dir", "HWCI_OUTPUTS_DIR", str),
            ("capacity_poll_interval", "HWCI_CAPACITY_POLL_INTERVAL", float),
            ("capacity_timeout", "HWCI_CAPACITY_TIMEOUT", float),
        ]:
            if var in environ:
                overrides[name] = conv(environ[var])
        return cls(**overrides)

    def with_overrides(self, **kwargs):
        """Return a copy with the given non-None fields replaced"""
        return replace(self, **{k: v for k, v in kwargs.items() if v is not None})

    def ice_delay(self, instance_type):
        """Seconds to wait before launching `instance_type`"""
        return dict(self.ice_delays).get(instance_type, 0)

    def _script(self, script):
        if os.path.isabs(self.orchestrator_dir):
            return f"{self.orchestrator_dir}/{script}"
        return f"./{self.orchestrator_dir}/{script}"

    @property
    def orchestrator_script(self):
        """Path of the test orchestrator entry point"""
        return self._script(defs.ORCHESTRATOR_SCRIPT)

    @property
    def delete_cluster_script(self):
        """Path of the orchestrator's cluster deletion script"""
        return self._script(defs.DELETE_CLUSTER_SCRIPT)
