"""
speechsampler.extract.process - Child processes with bounded waits.

Every extraction backend runs its work out of process so that a stalled
decoder can always be killed. Waiting is done with ``communicate``/``join``
timeouts sliced into short intervals, which bounds the attempt by its
deadline and lets a cancellation event interrupt it promptly.
"""

from __future__ import annotations

import multiprocessing
import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from typing import Any

from speechsampler.logging import get_logger

logger = get_logger("extract.process")

POLL_INTERVAL = 0.25
TERMINATE_GRACE = 2.0
MAX_DIAGNOSTIC_CHARS = 4000


@dataclass
class ProcessOutcome:
    """How a child process ended."""

    returncode: int | None
    diagnostic: str
    elapsed: float
    timed_out: bool = False
    cancelled: bool = False

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and not self.cancelled


def _remaining(deadline: float) -> float:
    return deadline - time.monotonic()


def _wait_slice(deadline: float, cancel_event: threading.Event | None) -> float:
    remaining = max(0.0, _remaining(deadline))
    if cancel_event is None:
        return remaining
    return min(remaining, POLL_INTERVAL)


def _terminate_popen(proc: subprocess.Popen) -> str:
    """Terminate, then kill if needed; return whatever stderr was buffered."""
    proc.terminate()
    try:
        _, err = proc.communicate(timeout=TERMINATE_GRACE)
    except subprocess.TimeoutExpired:
        proc.kill()
        _, err = proc.communicate()
    return err or ""


def run_command(
    cmd: Sequence[str],
    timeout: float,
    cancel_event: threading.Event | None = None,
) -> ProcessOutcome:
    """Run an external command, killing it at the deadline.

    Raises:
        FileNotFoundError: If the executable does not exist
    """
    start = time.monotonic()
    deadline = start + timeout

    proc = subprocess.Popen(
        list(cmd),
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.PIPE,
        text=True,
        errors="replace",
    )

    while True:
        if cancel_event is not None and cancel_event.is_set():
            err = _terminate_popen(proc)
            logger.debug("Cancelled %s after %.2fs", cmd[0], time.monotonic() - start)
            return ProcessOutcome(
                returncode=proc.returncode,
                diagnostic=err[-MAX_DIAGNOSTIC_CHARS:],
                elapsed=time.monotonic() - start,
                cancelled=True,
            )

        if _remaining(deadline) <= 0:
            err = _terminate_popen(proc)
            elapsed = time.monotonic() - start
            logger.warning("%s timed out after %.2fs (limit %.0fs)", cmd[0], elapsed, timeout)
            return ProcessOutcome(
                returncode=proc.returncode,
                diagnostic=err[-MAX_DIAGNOSTIC_CHARS:],
                elapsed=elapsed,
                timed_out=True,
            )

        try:
            _, err = proc.communicate(timeout=_wait_slice(deadline, cancel_event))
        except subprocess.TimeoutExpired:
            continue

        return ProcessOutcome(
            returncode=proc.returncode,
            diagnostic=(err or "").strip()[-MAX_DIAGNOSTIC_CHARS:],
            elapsed=time.monotonic() - start,
        )


def _child_main(func: Callable[..., Any], args: tuple, conn: Any) -> None:
    """Entry point of an isolated worker: report errors through ``conn``."""
    try:
        func(*args)
    except Exception as e:
        conn.send(f"{type(e).__name__}: {e}"[:MAX_DIAGNOSTIC_CHARS])
        conn.close()
        raise SystemExit(1)
    conn.send("")
    conn.close()


def run_callable(
    func: Callable[..., Any],
    args: tuple,
    timeout: float,
    cancel_event: threading.Event | None = None,
) -> ProcessOutcome:
    """Run ``func(*args)`` in a spawned child process with a deadline.

    ``func`` must be importable at module level. Its exception, if any, is
    returned as the outcome's diagnostic text with a non-zero return code.
    """
    ctx = multiprocessing.get_context("spawn")
    parent_conn, child_conn = ctx.Pipe(duplex=False)
    proc = ctx.Process(target=_child_main, args=(func, args, child_conn), daemon=True)

    start = time.monotonic()
    deadline = start + timeout
    proc.start()
    child_conn.close()

    timed_out = False
    cancelled = False
    try:
        while proc.is_alive():
            if cancel_event is not None and cancel_event.is_set():
                cancelled = True
                break
            if _remaining(deadline) <= 0:
                timed_out = True
                break
            proc.join(_wait_slice(deadline, cancel_event))

        if proc.is_alive():
            proc.terminate()
            proc.join(TERMINATE_GRACE)
            if proc.is_alive():
                proc.kill()
                proc.join()

        diagnostic = ""
        if not timed_out and not cancelled and parent_conn.poll():
            try:
                diagnostic = parent_conn.recv()
            except EOFError:
                diagnostic = ""
    finally:
        parent_conn.close()

    elapsed = time.monotonic() - start
    if timed_out:
        logger.warning("%s timed out after %.2fs (limit %.0fs)", func.__name__, elapsed, timeout)

    return ProcessOutcome(
        returncode=proc.exitcode,
        diagnostic=diagnostic,
        elapsed=elapsed,
        timed_out=timed_out,
        cancelled=cancelled,
    )
