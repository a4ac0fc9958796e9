"""Shell executor for confirmed preference commands."""
from __future__ import annotations

from typing import Optional
import asyncio
import logging
import shlex

from proximity.preferences import PreferenceClient
from proximity.schema import ExecutionResult

logger = logging.getLogger(__name__)


class ShellExecutor:
    """Runs a command only when its base matches a known preference command.

    A command is "<base command> <value>"; the base must be the command of
    some setting in the current preference snapshot for this platform.
    """

    def __init__(
        self,
        preferences: PreferenceClient,
        platform: str,
        timeout_seconds: float = 30.0,
    ) -> None:
        self.preferences = preferences
        self.platform = platform
        self.timeout_seconds = timeout_seconds

    def split(self, command: str) -> tuple[list[str], str]:
        parts = shlex.split(command)
        if len(parts) < 2:
            raise ValueError("Invalid command format: must have base command + 1 argument")
        return parts[:-1], parts[-1]

    def authorize(self, base_parts: list[str]) -> Optional[str]:
        base = " ".join(base_parts)
        if base not in self.preferences.valid_commands(self.platform):
            return f"Unrecognized/unauthorized command base: '{base}'. Will not execute command."
        return None

    async def execute(self, command: str, persist: bool) -> ExecutionResult:
        try:
            base_parts, value = self.split(command)
        except ValueError as exc:
            return ExecutionResult(ok=False, error=str(exc))

        refusal = self.authorize(base_parts)
        if refusal:
            logger.warning(refusal)
            return ExecutionResult(ok=False, error=refusal)

        logger.info(f"Attempting to run shell command: {command}")
        try:
            proc = await asyncio.create_subprocess_exec(
                *base_parts,
                value,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as exc:
            logger.warning(f"Failed to execute command: {command} with error {exc}")
            return ExecutionResult(ok=False, error=f"Failed to execute command: {exc}")

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout_seconds)
        except asyncio.TimeoutError:
            proc.kill()
            await proc.wait()
            return ExecutionResult(ok=False, error=f"Command timed out after {self.timeout_seconds:g}s")

        out = stdout.decode(errors="replace")
        if proc.returncode != 0:
            err = stderr.decode(errors="replace").strip()
            logger.warning(f"Command exited with code {proc.returncode}: {err}")
            return ExecutionResult(
                ok=False,
                error=err or f"Command exited with code {proc.returncode}",
                stdout=out,
                exit_code=proc.returncode,
            )

        logger.info(f"Command executed: {command}")
        if persist:
            updated = await self.preferences.update_current_value(" ".join(base_parts), value, self.platform)
            if not updated:
                logger.warning(f"Command ran but its new value was not saved: {command}")
        return ExecutionResult(ok=True, stdout=out, exit_code=0)
