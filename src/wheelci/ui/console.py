"""Console output formatting utilities for wheelci."""

from __future__ import annotations

import sys
import threading
from typing import Optional


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
        """
        self.debug = debug
        # job instances run in worker threads; keep multi-line blocks together
        self._lock = threading.RLock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        workflow: str,
        tag: str | None,
        run_id: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Workflow: {workflow}",
            f"Tag: {tag or '-'}",
            f"Run ID: {run_id}",
            f"Job instances: {job_count}",
            "",
        )

    def print_not_triggered(self, workflow: str, tag: str | None) -> None:
        """Print the silent no-op message for a non-matching tag."""
        self._emit(f"Workflow '{workflow}' not triggered by tag {tag!r}; nothing to do.")

    def print_job_start(self, name: str) -> None:
        """Print job start message."""
        self._emit(f"\nJOB STARTED: {name}")

    def print_step(self, job: str, name: str) -> None:
        """Print step start message."""
        self._emit(f"[{job}] STEP: {name}")

    def print_step_skipped(self, job: str, name: str, reason: str) -> None:
        self._emit(f"[{job}] STEP SKIPPED: {name} ({reason})")

    def print_step_output(self, job: str, output: str) -> None:
        if not output:
            return
        self._emit(*(f"[{job}]   {line}" for line in output.rstrip().splitlines()))

    def print_success(self, name: str) -> None:
        """Print success message."""
        self._emit(f"[{name}] STATUS: success")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        is_job: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Job or step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
            is_job: If True, print "JOB FAILED", otherwise "STEP FAILED"
        """
        prefix = "JOB FAILED" if is_job else "STEP FAILED"
        lines = [f"{prefix}: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if hint:
            lines.append(f"Hint: {hint}")
        if self.debug:
            lines.append(f"Error details: {reason}")
        else:
            # Show first line of error for non-debug mode
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            lines.append(f"Error: {error_line}")
        self._emit(*lines)

    def print_job_not_run(self, name: str, status: str, reason: str) -> None:
        """Print a job that was blocked, cancelled or has no runner."""
        self._emit(f"\nJOB {status.upper()}: {name} ({reason})")

    def print_artifact(self, action: str, name: str, count: int) -> None:
        self._emit(f"ARTIFACT: {action} '{name}' ({count} file(s))")

    def print_plan(self, levels: list[list[str]], disabled: list[str], unavailable: list[str]) -> None:
        """Print the stage plan of a workflow."""
        for idx, level in enumerate(levels):
            self._emit(f"=== Stage {idx + 1} ===")
            for key in level:
                suffix = " (no local runner)" if key in unavailable else ""
                self._emit(f"  {key}{suffix}")
        for key in disabled:
            self._emit(f"  {key} (disabled)")

    def print_results(self, results: dict[str, str]) -> None:
        """Print final results summary."""
        lines = ["\n" + "=" * 40, "RESULTS", "=" * 40]
        for job, status in results.items():
            status_display = status.upper() if status != "ok" else "SUCCESS"
            lines.append(f"  {job}: {status_display}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            with self._lock:
                traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
