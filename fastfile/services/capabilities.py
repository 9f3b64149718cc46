"""Backend capability detection"""

import asyncio
import importlib.util
from dataclasses import dataclass, field, replace
from typing import Dict, FrozenSet, Iterable, Mapping, Optional, Sequence

from ..core.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class CapabilitySet:
    """Backends confirmed present for one converter family"""
    backends: FrozenSet[str] = frozenset()
    tools: Mapping[str, str] = field(default_factory=dict)
    formats: Mapping[str, FrozenSet[str]] = field(default_factory=dict)
    probed: bool = False

    def has(self, backend: str) -> bool:
        return backend in self.backends

    def tool(self, backend: str, default: Optional[str] = None) -> Optional[str]:
        """Executable resolved for a backend during probing"""
        return self.tools.get(backend, default)

    def formats_of(self, backend: str) -> FrozenSet[str]:
        return self.formats.get(backend, frozenset())

    def with_backends(self, *names: str) -> "CapabilitySet":
        return replace(self, backends=self.backends | frozenset(names))

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary"""
        return {
            "backends": sorted(self.backends),
            "tools": dict(self.tools),
            "probed": self.probed,
        }


async def probe_command(
    args: Sequence[str],
    timeout: float = 15.0,
    expect: Optional[str] = None
) -> Optional[str]:
    """
    Run a version query for an external tool

    Never raises: a missing binary, a non-zero exit or a timeout all mean
    the tool is absent.

    Args:
        args: Command line, e.g. ("ffmpeg", "-version")
        timeout: Seconds to wait for the command
        expect: Text that must appear in the output for the tool to count

    Returns:
        Combined stdout/stderr text when the tool answered, otherwise None
    """
    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
    except (OSError, ValueError) as e:
        logger.debug(f"Probe {args[0]} unavailable: {e}")
        return None

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        logger.warning(f"Probe {' '.join(args)} timed out after {timeout}s")
        return None

    if process.returncode != 0:
        logger.debug(f"Probe {' '.join(args)} exited with {process.returncode}")
        return None

    output = stdout.decode("utf-8", errors="replace")
    if expect and expect.lower() not in output.lower():
        return None
    return output


async def probe_first_command(
    candidates: Iterable[Sequence[str]],
    timeout: float = 15.0,
    expect: Optional[str] = None
) -> Optional[str]:
    """Return the executable of the first candidate command that answers"""
    for args in candidates:
        if await probe_command(args, timeout=timeout, expect=expect) is not None:
            return args[0]
    return None


def probe_module(module_name: str) -> bool:
    """Check whether an optional library can be imported"""
    try:
        return importlib.util.find_spec(module_name) is not None
    except (ImportError, ValueError) as e:
        logger.debug(f"Library {module_name} unavailable: {e}")
        return False


def parse_ffmpeg_formats(output: str) -> FrozenSet[str]:
    """
    Extract muxer names from `ffmpeg -formats` output

    Lines look like ` DE matroska,webm   Matroska / WebM`; every name on a
    line whose flags include 'E' (muxing supported) is collected.
    """
    lines = output.splitlines()
    for index, line in enumerate(lines):
        if line.strip() == "--":
            lines = lines[index + 1:]
            break

    muxers = set()
    for line in lines:
        parts = line.split(None, 2)
        if len(parts) < 2:
            continue
        flags, names = parts[0], parts[1]
        if "E" in flags and set(flags) <= set("DEd."):
            muxers.update(name for name in names.split(",") if name)
    return frozenset(muxers)
