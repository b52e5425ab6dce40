"""
Step executor - runs a single pipeline step as a local process.
"""

import logging
import os
import signal
import subprocess
from typing import Optional, Union

from engine.src.errors import StepFailed, StepTimeout
from engine.src.models.pipeline import Step
from engine.src.models.results import StepResult, StepStatus

logger = logging.getLogger(__name__)

SHELL = ["bash", "-c"]

def execute_step(
    step: Step,
    working_dir: str,
    timeout: Optional[float] = None,
) -> StepResult:
    """
    Execute a single step with `working_dir` as its current directory.

    Returns a successful StepResult, or raises StepFailed (StepTimeout when
    `timeout` seconds pass) carrying the captured output.
    """
    logger.info(f"Running step '{step.name}': {step.run}")

    try:
        # Own process group so a timeout takes the step's children down too
        proc = subprocess.Popen(
            SHELL + [step.run],
            cwd=working_dir,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            start_new_session=True,
        )
    except OSError as e:
        logger.error(f"Step '{step.name}' could not be started: {e}")
        raise StepFailed(step.name, str(e), output=str(e))

    try:
        stdout, stderr = proc.communicate(timeout=timeout)
    except subprocess.TimeoutExpired:
        _kill_group(proc)
        stdout, stderr = proc.communicate()
        logger.error(f"Step '{step.name}' timed out after {timeout}s")
        raise StepTimeout(step.name, timeout, output=_text(stdout) + _text(stderr))

    out, err = _text(stdout), _text(stderr)
    logs = out + err

    if proc.returncode != 0:
        logger.error(f"Step '{step.name}' failed with exit code {proc.returncode}")
        raise StepFailed(
            step.name,
            err.strip(),
            output=logs,
            exit_code=proc.returncode,
        )

    logger.debug(f"Step '{step.name}' output:\n{logs}")
    return StepResult(name=step.name, status=StepStatus.SUCCESS, output=logs)

def _kill_group(proc: subprocess.Popen):
    try:
        os.killpg(proc.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass

def _text(data: Union[bytes, str, None]) -> str:
    # Step output is arbitrary bytes; never fail on undecodable output
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode(errors="replace")
    return data
