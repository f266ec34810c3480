# Copyright 2026 Amazon.com, Inc. or its affiliates. All Rights Reserved.
# SPDX-License-Identifier: Apache-2.0
"""Generic utility functions that are used by the pipeline helpers."""
import logging
import subprocess
from collections import namedtuple

CommandReturn = namedtuple("CommandReturn", "returncode stdout stderr")
CMDLOG = logging.getLogger("commands")


def _format_output_message(proc, stdout, stderr):
    output_message = f"\n[{proc.pid}] Command:\n{proc.args}"
    # Append stdout/stderr to the output message
    if stdout:
        output_message += f"\n[{proc.pid}] stdout:\n{stdout.decode()}"
    if stderr:
        output_message += f"\n[{proc.pid}] stderr:\n{stderr.decode()}"
    output_message += f"\nReturned error code: {proc.returncode}"
    return output_message


def run_cmd(
    cmd, check=False, shell=True, cwd=None, timeout=None, capture_output=True
) -> CommandReturn:
    """
    Execute a given command.

    :param cmd: command to execute
    :param check: whether a non-zero return code should result in a `ChildProcessError` or not.
    :param shell: run the command in a sub-shell
    :param cwd: sets the current directory before the child is executed
    :param timeout: Time before command execution should be aborted with a `TimeoutExpired` exception
    :param capture_output: if False, the child writes straight to our stdout/stderr
        and the returned stdout/stderr are None
    :return: return code, stdout, stderr
    """
    pipe = subprocess.PIPE if capture_output else None
    if isinstance(cmd, list) or not shell:
        proc = subprocess.Popen(cmd, stdout=pipe, stderr=pipe, cwd=cwd)
    else:
        proc = subprocess.Popen(cmd, shell=True, stdout=pipe, stderr=pipe, cwd=cwd)

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        proc.kill()

        # Sometimes stdout/stderr are passed on to children, in which case killing
        # the parent won't close them and communicate will still hang.
        if capture_output:
            proc.stdout.close()
            proc.stderr.close()

        stdout, stderr = proc.communicate()

        # Log the message with one call so that multiple statuses
        # don't get mixed up
        CMDLOG.warning(
            "Timeout executing command: %s\n",
            _format_output_message(proc, stdout, stderr),
        )

        raise

    output_message = _format_output_message(proc, stdout, stderr)

    # If a non-zero return code was thrown, raise an exception
    if check and proc.returncode != 0:
        raise ChildProcessError(output_message)

    CMDLOG.debug(output_message)

    if not capture_output:
        return CommandReturn(proc.returncode, None, None)
    return CommandReturn(proc.returncode, stdout.decode(), stderr.decode())


def check_output(cmd, shell=True, cwd=None, timeout=None) -> CommandReturn:
    """Identical to `run_cmd`, but always sets `check` to `True`."""
    return run_cmd(cmd, True, shell, cwd, timeout)


def in_venv(venv_dir, cmd):
    """Prefix a shell command so that it runs inside the given virtualenv"""
    return f". {venv_dir}/bin/activate; {cmd}"
