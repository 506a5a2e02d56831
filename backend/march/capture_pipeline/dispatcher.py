"""
Capture dispatch: pick the agent for a URL and run it.

Agents are external executables called as ``<script> <url> <destination>``.
They must write the captured bytes to ``destination`` and exit with status 0.
"""
import asyncio
import logging
import os
import signal
from pathlib import Path
from typing import Iterable

from march.core.config import CaptureAgent

logger = logging.getLogger(__name__)


class CaptureFailure(Exception):
    """The agent could not be started, timed out, or exited non-zero."""

    def __init__(self, message: str, output: bytes = b""):
        super().__init__(message)
        self.output = output


def select_agent(agents: Iterable[CaptureAgent], url: str) -> CaptureAgent | None:
    # 按配置顺序，第一个匹配的 agent 胜出
    for agent in agents:
        if agent.matches(url):
            return agent
    return None


async def run_agent(
    agent: CaptureAgent,
    url: str,
    destination: Path,
    timeout: float | None = None,
) -> None:
    try:
        proc = await asyncio.create_subprocess_exec(
            agent.script,
            url,
            str(destination),
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
            # 独立进程组，超时时连同 agent 启动的子进程一起结束
            start_new_session=True,
        )
    except OSError as e:
        raise CaptureFailure(f"unable to execute {agent.script}: {e}") from e

    try:
        output, _ = await asyncio.wait_for(proc.communicate(), timeout)
    except asyncio.TimeoutError:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
        except ProcessLookupError:
            pass
        await proc.wait()
        raise CaptureFailure(f"{agent.script} timed out after {timeout}s")

    if proc.returncode != 0:
        raise CaptureFailure(
            f"{agent.script} exited with status {proc.returncode}", output or b""
        )


async def dispatch(
    agents: Iterable[CaptureAgent],
    url: str,
    storage: Path,
    item_id: str,
    timeout: float | None = None,
) -> Path | None:
    """
    Capture ``url`` into ``storage/item_id``.

    Returns the path of the captured file, or None when no agent matches the
    URL. Raises CaptureFailure when the selected agent fails; any partial
    output is removed.
    """
    agent = select_agent(agents, url)
    if agent is None:
        logger.info(f"No capture agent matches {url}, nothing archived")
        return None

    destination = storage / item_id
    logger.info(f"Capturing {url} with {agent.name} into {destination}")
    try:
        await run_agent(agent, url, destination, timeout=timeout)
    except CaptureFailure:
        destination.unlink(missing_ok=True)
        raise
    return destination
