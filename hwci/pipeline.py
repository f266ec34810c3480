# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0

"""
Common helpers to drive hardware test pipelines
"""

import argparse
import dataclasses
import logging
import os
from pathlib import Path

import yaml

from hwci import artifacts, defs
from hwci.locking import LockPool
from hwci.outcome import Outcome, PipelineResult
from hwci.scheduler import run_stages
from hwci.settings import Settings
from hwci.stage import StageContext, TestStageSpec, build_stage

LOG = logging.getLogger("hwci.pipeline")

EXIT_CODES = {
    Outcome.SUCCESS: 0,
    Outcome.UNSTABLE: defs.UNSTABLE_EXIT_CODE,
    Outcome.FAILURE: 1,
}


def overlay_dict(base: dict, update: dict):
    """Overlay a dict over a base one"""
    base = base.copy()
    for key, val in update.items():
        if key in base and isinstance(val, dict):
            base[key] = overlay_dict(base.get(key, {}), val)
        else:
            base[key] = val
    return base


def stage_name_for(os_, instance_type, label=None):
    """Default stage name of a matrix entry

    >>> stage_name_for("alinux2", "c5n.18xlarge")
    'alinux2 c5n.18xlarge'
    """
    name = f"{os_} {instance_type}"
    return f"{label} {name}" if label else name


SPEC_FIELDS = {f.name for f in dataclasses.fields(TestStageSpec)}
REQUIRED_SPEC_FIELDS = [
    f.name
    for f in dataclasses.fields(TestStageSpec)
    if f.default is dataclasses.MISSING and f.default_factory is dataclasses.MISSING
]

# Short names accepted in matrix files
FIELD_ALIASES = {"config": "config_path", "odcr": "odcr_id"}


def rename_aliases(fields: dict):
    """Replace the short names of matrix files by TestStageSpec field names

    >>> rename_aliases({"odcr": "cr-1", "lock_count": 2})
    {'lock_count': 2, 'odcr_id': 'cr-1'}
    """
    fields = dict(fields)
    for alias, name in FIELD_ALIASES.items():
        if alias in fields:
            fields[name] = fields.pop(alias)
    return fields


def make_spec(fields: dict):
    """Build a TestStageSpec, telling which fields are missing or unknown"""
    where = fields.get("stage_name", "stage")
    unknown = sorted(set(fields) - SPEC_FIELDS)
    if unknown:
        raise ValueError(f"{where}: unknown field(s) {', '.join(unknown)}")
    missing = [name for name in REQUIRED_SPEC_FIELDS if name not in fields]
    if missing:
        raise ValueError(f"{where}: missing field(s) {', '.join(missing)}")
    return TestStageSpec(**fields)


def expand_matrix(oses, instance_types, label=None, per_instance=None, **kwargs):
    """
    Generate a test stage spec for each OS+instance type combination.

    :param oses: operating systems to test
    :param instance_types: instance types to test
    :param label: prefix of the stage names
    :param per_instance: dict of instance type to TestStageSpec fields
        overriding `kwargs` for that instance type (e.g. its own ODCR or lock)
    :param kwargs: TestStageSpec fields common to all stages
    """
    per_instance = per_instance or {}
    specs = []
    for instance_type in instance_types:
        for os_ in oses:
            overrides = rename_aliases(per_instance.get(instance_type) or {})
            fields = overlay_dict(kwargs, overrides)
            fields.setdefault("stage_name", stage_name_for(os_, instance_type, label))
            specs.append(make_spec({"os": os_, "instance_type": instance_type, **fields}))
    return specs


def load_matrix(path: Path, defaults: dict):
    """
    Load stage specs from a YAML file.

    The file holds a list of entries. Entries with `oses` and `instance_types`
    lists are expanded like `expand_matrix`; other entries describe a single
    stage. Missing fields are taken from `defaults`.

    ``` yaml
    - oses: [alinux2, ubuntu2004]
      instance_types: [c5n.18xlarge]
      config: configs/ci-efa.yaml
      per_instance:
        p4d.24xlarge:
          odcr: cr-0123456789abcdef0
    - stage_name: p4d
      os: alinux2
      instance_type: p4d.24xlarge
      lock_label: p4d
      lock_count: 2
    ```
    """
    entries = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or []
    if not isinstance(entries, list):
        raise ValueError(f"{path}: expected a list of stages")
    specs = []
    for entry in entries:
        if not isinstance(entry, dict):
            raise ValueError(f"{path}: expected a mapping, got {entry!r}")
        fields = overlay_dict(defaults, rename_aliases(entry))
        try:
            if "oses" in fields or "instance_types" in fields:
                if not ("oses" in fields and "instance_types" in fields):
                    raise ValueError("oses and instance_types go together")
                specs += expand_matrix(
                    fields.pop("oses"),
                    fields.pop("instance_types"),
                    label=fields.pop("label", None),
                    per_instance=fields.pop("per_instance", None),
                    **fields,
                )
            else:
                if "os" in fields and "instance_type" in fields:
                    fields.setdefault(
                        "stage_name",
                        stage_name_for(fields["os"], fields["instance_type"]),
                    )
                specs.append(make_spec(fields))
        except ValueError as err:
            raise ValueError(f"{path}: {err}") from err
    return specs


class KeyValueAction(argparse.Action):
    """An argparse action collecting repeated KEY=INT values into a dict

    Examples:

        --lock-capacity efa=4 --lock-capacity p4d=2
        {"efa": 4, "p4d": 2}
    """

    def __init__(self, option_strings, dest, nargs=None, **kwargs):
        if nargs is not None:
            raise ValueError("nargs not allowed")
        super().__init__(option_strings, dest, **kwargs)

    def __call__(self, parser, namespace, value, option_string=None):
        res = dict(getattr(namespace, self.dest) or {})
        try:
            key, val = value.split("=", maxsplit=1)
            res[key] = int(val)
        except ValueError:
            parser.error(f"{option_string} expects LABEL=COUNT, got {value!r}")
        if res[key] < 1:
            parser.error(f"{option_string} expects a positive COUNT, got {value!r}")
        setattr(namespace, self.dest, res)


COMMON_PARSER = argparse.ArgumentParser(
    description="Run the test orchestrator for each OS and instance type combination"
)
COMMON_PARSER.add_argument(
    "--build-tag",
    help="the BUILD_TAG generated by Jenkins",
    default=os.environ.get("BUILD_TAG", "local"),
)
COMMON_PARSER.add_argument("--config", help="orchestrator config file")
COMMON_PARSER.add_argument(
    "--os", dest="oses", metavar="OS", action="append", default=[]
)
COMMON_PARSER.add_argument(
    "--instance-type",
    dest="instance_types",
    metavar="TYPE",
    action="append",
    default=[],
)
COMMON_PARSER.add_argument("--region", default="us-east-1")
COMMON_PARSER.add_argument("--odcr", help="on demand capacity reservation id")
COMMON_PARSER.add_argument("--lock-label", default="hwci")
COMMON_PARSER.add_argument(
    "--lock-count",
    help="lock slots per stage, which is also the number of instances",
    type=int,
    default=2,
)
COMMON_PARSER.add_argument(
    "--lock-capacity",
    metavar="LABEL=COUNT",
    help="size of a lock pool; defaults to the largest request under that label",
    action=KeyValueAction,
    default={},
)
COMMON_PARSER.add_argument(
    "--extra-args",
    help="additional arguments passed to the orchestrator",
    default="",
)
COMMON_PARSER.add_argument(
    "--matrix",
    help="YAML file listing the stages to run",
    type=Path,
    default=None,
)
COMMON_PARSER.add_argument(
    "--skip-setup",
    help="don't download and install the orchestrator",
    action="store_true",
    default=False,
)
COMMON_PARSER.add_argument("--max-workers", type=int, default=None)
COMMON_PARSER.add_argument("--venv-dir", default=None)
COMMON_PARSER.add_argument("--orchestrator-dir", default=None)
COMMON_PARSER.add_argument("--outputs-dir", default=None)
COMMON_PARSER.add_argument(
    "--log-level", default=os.environ.get("HWCI_LOG_LEVEL", "INFO")
)


def lock_capacities(specs, explicit=None):
    """Lock pool sizes: the explicit ones, else the largest request of a label"""
    capacities = {}
    for spec in specs:
        capacities[spec.lock_label] = max(
            capacities.get(spec.lock_label, 0), spec.lock_count
        )
    return {**capacities, **(explicit or {})}


class HWPipeline:
    """
    Hardware test pipeline

    Helper class to build the stages of a run, and run them.
    """

    parser = COMMON_PARSER

    def __init__(self, argv=None, executor=None, settings=None):
        self.args = args = self.parser.parse_args(argv)
        settings = settings or Settings.from_env()
        self.settings = settings.with_overrides(
            venv_dir=args.venv_dir,
            orchestrator_dir=args.orchestrator_dir,
            outputs_dir=args.outputs_dir,
        )
        self.executor = executor
        self.result = PipelineResult()
        self.specs = []

    def default_fields(self):
        """TestStageSpec fields taken from the command line"""
        fields = {
            "build_tag": self.args.build_tag,
            "region": self.args.region,
            "lock_label": self.args.lock_label,
            "lock_count": self.args.lock_count,
            "extra_args": self.args.extra_args,
        }
        if self.args.config:
            fields["config_path"] = self.args.config
        if self.args.odcr:
            fields["odcr_id"] = self.args.odcr
        return fields

    def collect_specs(self):
        """Build the stage specs from the command line and matrix file"""
        defaults = self.default_fields()
        if self.args.oses or self.args.instance_types:
            if not (self.args.oses and self.args.instance_types):
                self.parser.error("--os and --instance-type go together")
            if not (self.args.config and self.args.odcr):
                self.parser.error("--os and --instance-type need --config and --odcr")
        try:
            if self.args.oses:
                self.specs += expand_matrix(
                    self.args.oses, self.args.instance_types, **defaults
                )
            if self.args.matrix:
                self.specs += load_matrix(self.args.matrix, defaults)
        except ValueError as err:
            self.parser.error(str(err))
        if not self.specs:
            self.parser.error("nothing to run, use --os/--instance-type or --matrix")
        return self.specs

    def _executor_kwargs(self):
        return {} if self.executor is None else {"executor": self.executor}

    def setup(self):
        """
        Download and install the orchestrator.

        The tarball holds a single `PortaFiducia` directory and is extracted
        next to `orchestrator_dir`, so an overridden `orchestrator_dir` has to
        end with that name unless it already holds an installed tree.
        """
        extract_dir = str(Path(self.settings.orchestrator_dir).parent)
        artifacts.download_and_extract(
            extract_dir, self.result, **self._executor_kwargs()
        )
        artifacts.install(
            self.settings.venv_dir,
            self.settings.orchestrator_dir,
            **self._executor_kwargs(),
        )
        Path(self.settings.outputs_dir).mkdir(parents=True, exist_ok=True)

    def lock_pool(self):
        """Lock pool of the run, rejecting requests it could never grant"""
        capacities = lock_capacities(self.specs, self.args.lock_capacity)
        for spec in self.specs:
            if spec.lock_count > capacities[spec.lock_label]:
                self.parser.error(
                    f"{spec.stage_name} needs {spec.lock_count} slots of "
                    f"{spec.lock_label}, its pool only has "
                    f"{capacities[spec.lock_label]}"
                )
        return LockPool(capacities)

    def context(self):
        """Shared context of the stages of this run"""
        return StageContext(
            locks=self.lock_pool(),
            result=self.result,
            settings=self.settings,
            **self._executor_kwargs(),
        )

    def run(self):
        """Run every stage and return the PipelineResult"""
        if not self.specs:
            self.collect_specs()
        context = self.context()
        if not self.args.skip_setup:
            self.setup()
        stages = [build_stage(spec, context) for spec in self.specs]
        LOG.info("Running %s stage(s)", len(stages))
        return run_stages(stages, self.result, max_workers=self.args.max_workers)


def main(argv=None, executor=None):
    """Entry point of the pipeline driver, returns the process exit code"""
    pipeline = HWPipeline(argv, executor=executor)
    logging.basicConfig(
        level=pipeline.args.log_level.upper(),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    result = pipeline.run()
    print(result.summary())
    return EXIT_CODES[result.verdict()]
