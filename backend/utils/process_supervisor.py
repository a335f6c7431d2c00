from __future__ import annotations

import logging
import subprocess
import threading
import time

from models.job_models import ProcessInvocation, ProcessOutcome, ProcessResult

logger = logging.getLogger(__name__)

OUTPUT_BUFFER_LINES = 200
DIAGNOSTIC_TAIL_LINES = 40


def run_invocation(invocation: ProcessInvocation) -> ProcessResult:
    """
    Run one invocation to completion or timeout and classify the outcome.

    Blocks the calling thread. On timeout the process is killed and reaped
    before returning, so nothing is left running. The result is returned,
    not raised; callers use ``ProcessResult.raise_for_outcome``.
    """
    timeout_seconds = invocation.timeout_seconds
    output_tail: list[str] = []
    timed_out = False
    started = time.monotonic()

    logger.info(
        "Executing %s (timeout %ss) -> %s",
        invocation.executable,
        timeout_seconds,
        invocation.output_path,
    )

    try:
        process = subprocess.Popen(
            list(invocation.args),
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            bufsize=1,
        )
    except OSError as exc:
        logger.error("Failed to start %s: %s", invocation.executable, exc)
        return ProcessResult(
            outcome=ProcessOutcome.FAILED,
            returncode=None,
            output=str(exc),
            elapsed_seconds=time.monotonic() - started,
            timeout_seconds=timeout_seconds,
        )

    def _kill_process_on_timeout() -> None:
        nonlocal timed_out
        # The timer can fire after a normal exit but before cancel() runs.
        if process.poll() is None:
            timed_out = True
            process.kill()

    timer = threading.Timer(timeout_seconds, _kill_process_on_timeout)
    timer.daemon = True
    timer.start()

    try:
        if process.stdout is not None:
            for line in process.stdout:
                line = line.strip()
                if line:
                    output_tail.append(line)
                    if len(output_tail) > OUTPUT_BUFFER_LINES:
                        output_tail = output_tail[-OUTPUT_BUFFER_LINES:]
        process.wait()
    finally:
        timer.cancel()
        if process.poll() is None:
            process.kill()
            process.wait()
        if process.stdout is not None:
            process.stdout.close()

    elapsed = time.monotonic() - started
    tail_text = "\n".join(output_tail[-DIAGNOSTIC_TAIL_LINES:])

    if timed_out:
        logger.error("%s timed out after %ss", invocation.executable, timeout_seconds)
        outcome = ProcessOutcome.TIMEOUT
    elif process.returncode != 0:
        logger.error(
            "%s failed (code %s) after %.1fs",
            invocation.executable,
            process.returncode,
            elapsed,
        )
        outcome = ProcessOutcome.FAILED
    elif not invocation.output_path.exists():
        logger.error(
            "%s exited cleanly but %s was not written",
            invocation.executable,
            invocation.output_path,
        )
        outcome = ProcessOutcome.FAILED
    else:
        logger.info("%s finished in %.1fs", invocation.executable, elapsed)
        outcome = ProcessOutcome.SUCCESS

    return ProcessResult(
        outcome=outcome,
        returncode=None if timed_out else process.returncode,
        output=tail_text,
        elapsed_seconds=elapsed,
        timeout_seconds=timeout_seconds,
    )
