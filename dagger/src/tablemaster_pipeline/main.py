"""Main entry point for the Tablemaster CI pipeline."""

from __future__ import annotations

import asyncio
import json
import sys
import time

import dagger
from dagger import dag, function, object_type

CheckResult = tuple[str, bool, str]
TimedResult = tuple[str, bool, str, float]

PYTHON_IMAGE = "python:3.13-slim"


@object_type
class TablemasterPipeline:
    """Quality checks for the Tablemaster client packages."""

    @function
    async def check(self, source: dagger.Directory, json_output: bool = False) -> str:
        """Run every quality check in parallel.

        Parameters
        ----------
        source:
            The project source directory (pass . from the repo root).
        json_output:
            If True, return JSON-formatted output for machine parsing.

        Returns:
            Formatted report with pass/fail status and timing.
        """
        start = time.time()
        log("▶ Quality checks...")
        results = await asyncio.gather(
            self._timed_check(self._run_ruff(source)),
            self._timed_check(self._run_mypy(source)),
            self._timed_check(self._run_pytest(source)),
        )
        for name, passed, _message, duration in results:
            log(f"  {'✓' if passed else '✗'} {name} ({duration:.1f}s)")
        total_time = time.time() - start

        if json_output:
            return self._format_json_report(list(results), total_time)
        return self._format_report(list(results), total_time)

    @function
    async def lint(self, source: dagger.Directory) -> str:
        """Run ruff linter."""
        return self._format_single(await self._run_ruff(source))

    @function
    async def typecheck(self, source: dagger.Directory) -> str:
        """Run mypy type checker."""
        return self._format_single(await self._run_mypy(source))

    @function
    async def test(self, source: dagger.Directory) -> str:
        """Run pytest."""
        return self._format_single(await self._run_pytest(source))

    async def _timed_check(self, coro: object) -> TimedResult:
        """Wrap a check coroutine to add timing."""
        start = time.time()
        result = await coro  # type: ignore[misc]
        return (*result, time.time() - start)  # type: ignore[return-value]

    # =========================================================================
    # Checks
    # =========================================================================

    def _get_python_container(self, source: dagger.Directory) -> dagger.Container:
        """Get a Python container with the project and its extras installed."""
        src = (
            source.without_directory(".venv")
            .without_directory(".git")
            .without_directory("dagger")
        )

        return (
            dag.container()
            .from_(PYTHON_IMAGE)
            .with_workdir("/app")
            .with_file(
                "/usr/local/bin/uv",
                dag.container().from_("ghcr.io/astral-sh/uv:latest").file("/uv"),
            )
            .with_file("/app/pyproject.toml", src.file("pyproject.toml"))
            .with_directory("/app/packages", src.directory("packages"))
            .with_exec(["uv", "sync", "--all-extras"])
        )

    async def _run_ruff(self, source: dagger.Directory) -> CheckResult:
        """Run ruff linter and formatter check."""
        try:
            container = self._get_python_container(source)
            await container.with_exec(["uv", "run", "ruff", "check", "."]).stdout()
            await container.with_exec(
                ["uv", "run", "ruff", "format", "--check", "."]
            ).stdout()
            return ("ruff check", True, "")
        except dagger.ExecError as e:
            return ("ruff check", False, str(e))

    async def _run_mypy(self, source: dagger.Directory) -> CheckResult:
        """Run mypy type checker."""
        try:
            container = self._get_python_container(source)
            await container.with_exec(["uv", "run", "mypy", "packages"]).stdout()
            return ("mypy", True, "")
        except dagger.ExecError as e:
            return ("mypy", False, str(e))

    async def _run_pytest(self, source: dagger.Directory) -> CheckResult:
        """Run the unit tests; the HTTP API is mocked, so no services are needed."""
        try:
            container = self._get_python_container(source)
            output = await container.with_exec(
                ["uv", "run", "pytest", "--tb=short", "-q"]
            ).stdout()

            summary = output.strip().split("\n")[-1] if output else "no tests"
            return (f"pytest ({summary})", True, "")

        except dagger.ExecError as e:
            error_msg = str(e)
            if "FAILED" in error_msg:
                failures = [line for line in error_msg.split("\n") if "FAILED" in line]
                error_msg = "\n".join(failures[:3]) or error_msg
            return ("pytest", False, error_msg)

    # =========================================================================
    # Output Formatting
    # =========================================================================

    def _format_single(self, result: CheckResult) -> str:
        name, passed, message = result
        if passed:
            return f"✓ {name}"
        return f"✗ {name}\n{message}"

    def _format_report(self, results: list[TimedResult], total_time: float) -> str:
        """Format timed results into a readable report."""
        rule = "═" * 62
        lines = [rule, "  QUALITY CHECKS", rule, ""]

        for name, passed, message, duration in results:
            icon = "✓" if passed else "✗"
            lines.append(f"  {icon} {name}".ljust(48) + f"({duration:.1f}s)")
            if not passed and message:
                for msg_line in message.split("\n")[:3]:
                    lines.append(f"    → {msg_line}")

        all_passed = all(r[1] for r in results)
        status = "PASSED" if all_passed else "FAILED"
        lines += ["", rule, f"  RESULT: {status}".ljust(48) + f"Total: {total_time:.1f}s", rule]
        if not all_passed:
            failed_count = sum(1 for r in results if not r[1])
            lines += ["", f"{failed_count} check(s) failed. Fix issues and retry."]
        return "\n".join(lines)

    def _format_json_report(self, results: list[TimedResult], total_time: float) -> str:
        """Format timed results as JSON for machine parsing."""
        checks: list[dict[str, object]] = []
        for name, passed, message, duration in results:
            check: dict[str, object] = {
                "name": name,
                "status": "passed" if passed else "failed",
                "duration_seconds": round(duration, 2),
            }
            if not passed and message:
                check["error"] = message
            checks.append(check)

        report = {
            "result": "passed" if all(r[1] for r in results) else "failed",
            "duration_seconds": round(total_time, 2),
            "checks": checks,
        }
        return json.dumps(report, indent=2)


def log(msg: str) -> None:
    print(msg, file=sys.stderr, flush=True)
