"""Subprocess helper shared by the command-backed collaborators."""

from __future__ import annotations

import asyncio
import shutil


def resolve_cli(cli_path: str) -> str:
    found = shutil.which(cli_path)
    return found or cli_path


def render_command(template: list[str], **values: str) -> list[str]:
    """Substitute ``{name}`` placeholders in each argv element."""
    return [part.format_map(values) for part in template]


async def run_command(cmd: list[str], timeout: float = 30) -> tuple[bool, str]:
    """Run a command and return (success, output)."""
    cmd = [resolve_cli(cmd[0]), *cmd[1:]]
    try:
        proc = await asyncio.create_subprocess_exec(
            *cmd,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError:
        return False, f"CLI not found: {cmd[0]}"

    try:
        stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        proc.kill()
        await proc.wait()
        return False, "Command timed out."

    out = (stdout or b"").decode("utf-8", errors="replace").strip()
    err = (stderr or b"").decode("utf-8", errors="replace").strip()
    if proc.returncode != 0:
        return False, err or out
    return True, out or err
