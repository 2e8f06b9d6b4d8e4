"""Connectivity checks for the database, document store and notifier transport."""

import contextvars
import threading
import time
from dataclasses import dataclass
from typing import Callable, Dict, List

from docnotify.logging import get_logger

logger = get_logger(__name__, component="health")

DEFAULT_TIMEOUT_SECONDS = 30


@dataclass
class CheckResult:
    """Outcome of one health check."""

    name: str
    healthy: bool
    detail: str = "OK"
    duration_ms: float = 0.0


def _timed(name: str, check: Callable[[], None]) -> CheckResult:
    started = time.monotonic()
    try:
        check()
    except Exception as e:
        elapsed = (time.monotonic() - started) * 1000
        return CheckResult(name, False, f"{type(e).__name__}: {e}", round(elapsed, 1))
    elapsed = (time.monotonic() - started) * 1000
    return CheckResult(name, True, "OK", round(elapsed, 1))


class _CheckRunner:
    """One health check running on its own daemon thread."""

    def __init__(self, name: str, check: Callable[[], None]):
        self.name = name
        self.result = None
        context = contextvars.copy_context()
        self.thread = threading.Thread(
            target=context.run,
            args=(self._run, check),
            name=f"health-{name}",
            daemon=True,
        )

    def _run(self, check: Callable[[], None]) -> None:
        self.result = _timed(self.name, check)


def run_health_checks(
    checks: Dict[str, Callable[[], None]],
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
) -> List[CheckResult]:
    """
    Run every check concurrently, each bounded by ``timeout`` seconds.

    A check passes when it returns without raising. Checks still running
    when the timeout expires are reported as failed. They run on daemon
    threads, so a hung check never delays interpreter exit.

    Args:
        checks: Check name -> zero-argument callable
        timeout: Seconds to wait for all checks

    Returns:
        One CheckResult per check, in the order given
    """
    if timeout <= 0:
        raise ValueError(f"timeout must be positive, got: {timeout}")
    if not checks:
        return []

    runners = [_CheckRunner(name, check) for name, check in checks.items()]
    for runner in runners:
        runner.thread.start()

    deadline = time.monotonic() + timeout
    for runner in runners:
        runner.thread.join(max(0.0, deadline - time.monotonic()))

    results = []
    for runner in runners:
        result = runner.result
        if result is None:
            result = CheckResult(runner.name, False, f"Timed out after {timeout:g}s", timeout * 1000)
        results.append(result)

        log = logger.info if result.healthy else logger.error
        log(
            f"Health check {runner.name}: {'OK' if result.healthy else result.detail}",
            extra={
                "event": "health.check.completed",
                "check": runner.name,
                "healthy": result.healthy,
                "duration_ms": result.duration_ms,
            },
        )
    return results


def format_health(results: List[CheckResult]) -> str:
    """Render one line per check plus an overall verdict."""
    lines = []
    for result in results:
        mark = "✓" if result.healthy else "✗"
        lines.append(f"{mark} {result.name:<15} {result.detail} ({result.duration_ms:.0f} ms)")
    healthy = all(r.healthy for r in results)
    lines.append("Overall: " + ("healthy" if healthy else "unhealthy"))
    return "\n".join(lines)
