# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Tests for the pipeline driver."""

import pytest

from hwci.pipeline import (
    HWPipeline,
    expand_matrix,
    load_matrix,
    lock_capacities,
    main,
    overlay_dict,
)

COMMON = {
    "build_tag": "jenkins-PR-7",
    "region": "us-west-2",
    "lock_label": "efa",
    "lock_count": 2,
    "config_path": "configs/ci.yaml",
    "odcr_id": "cr-1",
}


def test_overlay_dict():
    """
    Nested dictionaries are merged, other values replaced.
    """
    base = {"a": 1, "b": {"c": 2, "d": 3}}
    assert overlay_dict(base, {"b": {"c": 4}, "e": 5}) == {
        "a": 1,
        "b": {"c": 4, "d": 3},
        "e": 5,
    }
    assert base == {"a": 1, "b": {"c": 2, "d": 3}}


def test_expand_matrix():
    """
    One stage per OS and instance type.
    """
    specs = expand_matrix(
        ["alinux2", "ubuntu2004"],
        ["c5n.18xlarge", "p4d.24xlarge"],
        label="EFA",
        per_instance={"p4d.24xlarge": {"lock_label": "p4d", "odcr_id": "cr-2"}},
        **COMMON,
    )
    assert [spec.stage_name for spec in specs] == [
        "EFA alinux2 c5n.18xlarge",
        "EFA ubuntu2004 c5n.18xlarge",
        "EFA alinux2 p4d.24xlarge",
        "EFA ubuntu2004 p4d.24xlarge",
    ]
    assert {spec.lock_label for spec in specs[:2]} == {"efa"}
    assert {(spec.lock_label, spec.odcr_id) for spec in specs[2:]} == {("p4d", "cr-2")}
    assert all(spec.region == "us-west-2" for spec in specs)


def test_load_matrix(tmp_path):
    """
    Matrix files mix expanded entries and single stages.
    """
    matrix = tmp_path / "matrix.yaml"
    matrix.write_text(
        """
- oses: [alinux2, rockylinux8]
  instance_types: [c6gn.16xlarge]
  config: configs/arm.yaml
- stage_name: p4d
  os: alinux2
  instance_type: p4d.24xlarge
  lock_label: p4d
  lock_count: 1
  odcr: cr-9
  extra_args: --test-list nccl
""",
        encoding="utf-8",
    )
    specs = load_matrix(matrix, COMMON)
    assert [spec.stage_name for spec in specs] == [
        "alinux2 c6gn.16xlarge",
        "rockylinux8 c6gn.16xlarge",
        "p4d",
    ]
    assert specs[0].config_path == "configs/arm.yaml"
    assert specs[2].odcr_id == "cr-9"
    assert specs[2].extra_args == "--test-list nccl"
    assert specs[2].config_path == "configs/ci.yaml"


def test_load_matrix_invalid(tmp_path):
    """
    Matrix files must hold a list of well formed entries.
    """
    matrix = tmp_path / "matrix.yaml"
    matrix.write_text("stage_name: lonely\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_matrix(matrix, COMMON)
    matrix.write_text("- oses: [alinux2]\n", encoding="utf-8")
    with pytest.raises(ValueError):
        load_matrix(matrix, COMMON)


def test_load_matrix_per_instance_aliases(tmp_path):
    """
    Per instance overrides accept the same short names as entries.
    """
    matrix = tmp_path / "matrix.yaml"
    matrix.write_text(
        """
- oses: [alinux2]
  instance_types: [c5n.18xlarge, p4d.24xlarge]
  per_instance:
    p4d.24xlarge:
      odcr: cr-p4d
      config: configs/p4d.yaml
""",
        encoding="utf-8",
    )
    c5n, p4d = load_matrix(matrix, COMMON)
    assert (c5n.odcr_id, c5n.config_path) == ("cr-1", "configs/ci.yaml")
    assert (p4d.odcr_id, p4d.config_path) == ("cr-p4d", "configs/p4d.yaml")


@pytest.mark.parametrize(
    "entry,message",
    [
        ("- oses: [alinux2]\n  instance_types: [c5n.18xlarge]\n", "odcr_id"),
        ("- os: alinux2\n  instance_type: c5n.18xlarge\n  odcr: cr-1\n", "config_path"),
        ("- stage_name: lonely\n  config: c.yaml\n  odcr: cr-1\n", "instance_type"),
        ("- os: alinux2\n  instance_type: c5n.18xlarge\n  odcr: cr-1\n"
         "  config: c.yaml\n  colour: blue\n", "colour"),
    ],
)
def test_load_matrix_incomplete_entry(tmp_path, entry, message):
    """
    Entries missing a field, or with an unknown one, name the file and field.
    """
    matrix = tmp_path / "matrix.yaml"
    matrix.write_text(entry, encoding="utf-8")
    defaults = {k: v for k, v in COMMON.items() if k not in ("config_path", "odcr_id")}
    with pytest.raises(ValueError, match=message) as exc_info:
        load_matrix(matrix, defaults)
    assert str(matrix) in str(exc_info.value)


def test_lock_capacities():
    """
    Pools default to the largest request under their label.
    """
    specs = expand_matrix(["alinux2"], ["c5n.18xlarge"], **COMMON) + expand_matrix(
        ["alinux2"], ["p4d.24xlarge"], **{**COMMON, "lock_label": "p4d", "lock_count": 4}
    )
    assert lock_capacities(specs) == {"efa": 2, "p4d": 4}
    assert lock_capacities(specs, {"efa": 8}) == {"efa": 8, "p4d": 4}


def test_parse_lock_capacity():
    """
    --lock-capacity can be repeated.
    """
    pipeline = HWPipeline(
        ["--lock-capacity", "efa=4", "--lock-capacity", "p4d=2", "--skip-setup"]
    )
    assert pipeline.args.lock_capacity == {"efa": 4, "p4d": 2}


def test_parse_lock_capacity_invalid():
    """
    Malformed lock capacities are rejected.
    """
    with pytest.raises(SystemExit):
        HWPipeline(["--lock-capacity", "efa"])


def test_nothing_to_run():
    """
    A run needs stages.
    """
    pipeline = HWPipeline(["--skip-setup"])
    with pytest.raises(SystemExit):
        pipeline.collect_specs()


ARGV = [
    "--build-tag",
    "jenkins-PR-7",
    "--config",
    "configs/ci.yaml",
    "--odcr",
    "cr-1",
    "--os",
    "alinux2",
    "--os",
    "ubuntu2004",
    "--instance-type",
    "c5n.18xlarge",
    "--lock-count",
    "1",
    "--lock-capacity",
    "hwci=2",
    "--extra-args=--test-list efa",
]


@pytest.mark.parametrize(
    "returncode,exit_code", [(0, 0), (65, 65), (1, 1)]
)
def test_main(fake_executor, tmp_path, returncode, exit_code, capsys):
    """
    The driver exit code reflects the worst stage.
    """
    fake_executor.on("--os ubuntu2004", returncode=returncode)
    argv = ARGV + ["--skip-setup", "--outputs-dir", str(tmp_path)]
    assert main(argv, executor=fake_executor) == exit_code

    runs = fake_executor.commands("test_orchestrator.py")
    assert len(runs) == 2
    assert all("--test-list efa --junit-xml" in cmd for cmd in runs)
    assert all(f"--junit-xml {tmp_path}/PR-7-" in cmd for cmd in runs)
    assert "Pipeline result:" in capsys.readouterr().out


def test_main_with_setup(fake_executor, tmp_path):
    """
    Without --skip-setup the orchestrator is fetched and installed first.
    """
    outputs = tmp_path / "outputs"
    fake_executor.on("sts get-caller-identity", stdout="123456789012")
    pipeline = HWPipeline(ARGV + ["--outputs-dir", str(outputs)], executor=fake_executor)
    result = pipeline.run()

    assert result.build_ok
    assert outputs.is_dir()
    setup_cmds = fake_executor.calls[:3]
    assert "sts get-caller-identity" in setup_cmds[0]
    assert "aws s3 cp" in setup_cmds[1]
    assert "python3 -m venv" in setup_cmds[2]


@pytest.mark.parametrize("missing", ["--config", "--odcr"])
def test_stages_need_config_and_odcr(fake_executor, missing):
    """
    Stages given on the command line need an orchestrator config and an ODCR.
    """
    index = ARGV.index(missing)
    argv = ARGV[:index] + ARGV[index + 2 :] + ["--skip-setup"]
    with pytest.raises(SystemExit):
        main(argv, executor=fake_executor)
    assert not fake_executor.calls


def test_bad_matrix_file(fake_executor, tmp_path):
    """
    A malformed matrix file is a usage error.
    """
    matrix = tmp_path / "matrix.yaml"
    matrix.write_text("- os: alinux2\n  instance_type: c5n.18xlarge\n", encoding="utf-8")
    with pytest.raises(SystemExit):
        main(["--matrix", str(matrix), "--skip-setup"], executor=fake_executor)
    assert not fake_executor.calls


def test_lock_capacity_too_small(fake_executor):
    """
    A pool smaller than a stage's request is rejected before anything runs.
    """
    argv = ARGV + ["--lock-count", "2", "--lock-capacity", "hwci=1", "--skip-setup"]
    with pytest.raises(SystemExit):
        main(argv, executor=fake_executor)
    assert not fake_executor.calls


def test_parse_lock_capacity_not_positive():
    """
    Empty lock pools are rejected.
    """
    with pytest.raises(SystemExit):
        HWPipeline(["--lock-capacity", "efa=0"])


def test_setup_orchestrator_dir(fake_executor, tmp_path):
    """
    The orchestrator is extracted next to, and installed from, its directory.
    """
    fake_executor.on("sts get-caller-identity", stdout="123456789012")
    orchestrator_dir = tmp_path / "PortaFiducia"
    pipeline = HWPipeline(
        ARGV
        + [
            "--orchestrator-dir",
            str(orchestrator_dir),
            "--outputs-dir",
            str(tmp_path / "outputs"),
        ],
        executor=fake_executor,
    )
    pipeline.setup()

    assert fake_executor.commands(f"tar xf /tmp/portafiducia.tar.gz -C {tmp_path}")
    assert fake_executor.commands(f"pip install -e {orchestrator_dir}")
