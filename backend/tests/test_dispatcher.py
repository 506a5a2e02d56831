import asyncio
import re
import time
from pathlib import Path

import pytest

from march.capture_pipeline.dispatcher import CaptureFailure, dispatch, select_agent
from march.core.config import CaptureAgent, Registry
from tests.conftest import write_agent


def agent(name: str, pattern: str, script: str = "/bin/true") -> CaptureAgent:
    return CaptureAgent(name=name, script=script, pattern=re.compile(pattern))


def test_first_match_wins() -> None:
    agents = [agent("specific", r"example\.com/video"), agent("any", r".*"), agent("never", r"video")]

    assert select_agent(agents, "https://example.com/video/1").name == "specific"
    assert select_agent(agents, "https://example.com/text").name == "any"
    assert select_agent(list(reversed(agents)), "https://example.com/video/1").name == "any"


def test_no_match() -> None:
    assert select_agent([agent("a", r"^https://a\.example/")], "https://b.example/") is None
    assert select_agent([], "https://a.example/") is None


def test_dispatch_passes_url_and_destination(agents_dir: Path, storage: Path) -> None:
    script = write_agent(agents_dir, "args.sh", "printf '%s|%s' \"$1\" \"$2\" > \"$2\"")
    path = asyncio.run(dispatch([agent("args", ".*", str(script))], "https://x.example/", storage, "item"))

    assert path == storage / "item"
    assert path.read_text() == f"https://x.example/|{storage / 'item'}"


def test_dispatch_without_match_is_noop(storage: Path) -> None:
    assert asyncio.run(dispatch([], "https://x.example/", storage, "item")) is None
    assert list(storage.iterdir()) == []


def test_nonzero_exit_fails_and_removes_output(agents_dir: Path, storage: Path) -> None:
    script = write_agent(agents_dir, "partial.sh", "echo partial > \"$2\"\necho boom\nexit 2")

    with pytest.raises(CaptureFailure, match="status 2") as excinfo:
        asyncio.run(dispatch([agent("partial", ".*", str(script))], "https://x.example/", storage, "item"))

    assert b"boom" in excinfo.value.output
    assert not (storage / "item").exists()


def test_missing_script_fails(storage: Path, tmp_path: Path) -> None:
    missing = agent("missing", ".*", str(tmp_path / "does-not-exist"))
    with pytest.raises(CaptureFailure, match="unable to execute"):
        asyncio.run(dispatch([missing], "https://x.example/", storage, "item"))


def test_timeout_fails(agents_dir: Path, storage: Path) -> None:
    script = write_agent(agents_dir, "slow.sh", "exec sleep 5")
    with pytest.raises(CaptureFailure, match="timed out"):
        asyncio.run(
            dispatch([agent("slow", ".*", str(script))], "https://x.example/", storage, "item", timeout=0.2)
        )


def test_registry_order_is_config_order(registry: Registry) -> None:
    assert [a.name for a in registry.agents] == ["mirror", "same", "broken", "echo"]
    assert select_agent(registry.agents, "https://example.com/a-mirror").name == "mirror"
    assert select_agent(registry.agents, "https://example.com/anything").name == "echo"


def test_timeout_kills_agent_children(agents_dir: Path, storage: Path) -> None:
    # sleep 作为子进程运行，仍持有 stdout 管道
    script = write_agent(agents_dir, "slow-child.sh", "sleep 5\nprintf late > \"$2\"")

    started = time.monotonic()
    with pytest.raises(CaptureFailure, match="timed out"):
        asyncio.run(
            dispatch([agent("slow", ".*", str(script))], "https://x.example/", storage, "item", timeout=0.2)
        )

    assert time.monotonic() - started < 3
    time.sleep(0.1)
    assert not (storage / "item").exists()
