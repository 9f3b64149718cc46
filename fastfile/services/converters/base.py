"""Converter backend interface and the fallback chain shared by all families"""

import asyncio
import functools
import shutil
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Callable, Dict, FrozenSet, Iterable, List, Optional, Sequence

from ...core.config import Settings, settings as default_settings
from ...core.exceptions import (
    BackendFailure,
    BackendUnavailableError,
    ConversionError,
    UnsupportedFormatError,
)
from ...core.logger import get_logger
from ...core.types import ConversionJob, ConversionOptions, FileCategory
from ..capabilities import CapabilitySet

logger = get_logger(__name__)


async def run_command(
    backend: str,
    args: Sequence[str],
    timeout: float,
    cwd: Optional[Path] = None
) -> str:
    """
    Run an external tool without blocking the event loop

    Args:
        backend: Backend name used in failure messages
        args: Full command line
        timeout: Seconds before the process is killed
        cwd: Working directory (optional)

    Returns:
        Captured stdout

    Raises:
        BackendFailure: If the tool is missing, exits non-zero or times out
    """
    logger.debug(f"Running {backend}: {' '.join(str(a) for a in args)}")
    try:
        process = await asyncio.create_subprocess_exec(
            *[str(a) for a in args],
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except OSError as e:
        raise BackendFailure(backend, f"could not start {args[0]}: {e}") from e

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except asyncio.TimeoutError:
        process.kill()
        await process.wait()
        raise BackendFailure(backend, f"timed out after {timeout:g}s")

    if process.returncode != 0:
        detail = stderr.decode("utf-8", errors="replace").strip().splitlines()
        reason = detail[-1] if detail else "no error output"
        raise BackendFailure(backend, f"exited with code {process.returncode}: {reason}")

    return stdout.decode("utf-8", errors="replace")


async def run_blocking(
    backend: str,
    func: Callable[..., Any],
    *args: Any,
    timeout: float,
    **kwargs: Any
) -> Any:
    """Run a blocking library call in the default executor with a timeout"""
    loop = asyncio.get_running_loop()
    call = functools.partial(func, *args, **kwargs)
    try:
        return await asyncio.wait_for(loop.run_in_executor(None, call), timeout=timeout)
    except asyncio.TimeoutError:
        raise BackendFailure(backend, f"timed out after {timeout:g}s")


def remove_path(path: Path) -> None:
    """Remove a file or directory, logging instead of raising"""
    try:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()
        else:
            return
        logger.debug(f"Removed {path}")
    except OSError as e:
        logger.warning(f"Failed to remove {path}: {e}")


async def discard_path(path: Path) -> None:
    """remove_path in the default executor, for use on the event loop"""
    await asyncio.get_running_loop().run_in_executor(None, remove_path, path)


class ConverterBackend(ABC):
    """One concrete tool or library able to perform (part of) a conversion"""

    name: str = ""

    def __init__(self, app_settings: Settings):
        self.settings = app_settings

    def is_available(self, capabilities: CapabilitySet) -> bool:
        return capabilities.has(self.name)

    @abstractmethod
    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        """Whether this backend handles the exact transformation of the job"""
        pass

    @abstractmethod
    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        """
        Perform the conversion

        Args:
            job: Conversion job
            capabilities: Capability snapshot taken when the job started

        Returns:
            Path of the produced output

        Raises:
            BackendFailure: If the backend could not produce the output
        """
        pass


class ConverterChain(ABC):
    """Ordered fallback over the backends of one converter family"""

    category: FileCategory = FileCategory.UNKNOWN

    def __init__(
        self,
        backends: List[ConverterBackend],
        app_settings: Optional[Settings] = None,
        initial_capabilities: Optional[CapabilitySet] = None
    ):
        self.settings = app_settings or default_settings
        self.backends = backends
        self._capabilities = initial_capabilities or CapabilitySet()

    @property
    def capabilities(self) -> CapabilitySet:
        return self._capabilities

    def set_capabilities(self, capabilities: CapabilitySet) -> None:
        """Replace the capability snapshot in one step"""
        self._capabilities = capabilities

    @abstractmethod
    async def probe(self) -> CapabilitySet:
        """Detect which backends of this family are present"""
        pass

    async def refresh_capabilities(self) -> CapabilitySet:
        """Run the probe; a failing probe leaves the family without new backends"""
        try:
            capabilities = await self.probe()
        except Exception as e:
            logger.error(f"Capability probe for {self.category.value} failed: {e}")
            capabilities = CapabilitySet(
                backends=self._capabilities.backends,
                tools=self._capabilities.tools,
                formats=self._capabilities.formats,
                probed=True,
            )
        self.set_capabilities(capabilities)
        logger.info(
            f"{self.category.value} backends: {sorted(capabilities.backends) or 'none'}"
        )
        return capabilities

    @abstractmethod
    def supported_input_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        pass

    @abstractmethod
    def supported_output_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        pass

    def supported_formats(self) -> Dict[str, List[str]]:
        """Currently supported formats, without the leading dot"""
        capabilities = self._capabilities
        return {
            "input": _display(self.supported_input_formats(capabilities)),
            "output": _display(self.supported_output_formats(capabilities)),
        }

    def has_backends(self, capabilities: CapabilitySet) -> bool:
        """Whether any backend of the family is present"""
        return any(backend.is_available(capabilities) for backend in self.backends)

    def validate_formats(
        self,
        input_format: str,
        output_format: str,
        capabilities: CapabilitySet
    ) -> None:
        """
        Check both formats against the currently supported set

        Raises:
            UnsupportedFormatError: If either format is not supported
        """
        inputs = self.supported_input_formats(capabilities)
        if input_format not in inputs:
            raise UnsupportedFormatError(
                f"Input format {input_format} is not supported for "
                f"{self.category.value} files. Supported formats: {_listing(inputs)}"
            )
        outputs = self.supported_output_formats(capabilities)
        if output_format not in outputs:
            raise UnsupportedFormatError(
                f"Output format {output_format} is not supported for "
                f"{self.category.value} files. Supported formats: {_listing(outputs)}"
            )

    async def convert(
        self,
        input_path: Path,
        output_path: Path,
        input_format: str,
        output_format: str,
        options: Optional[ConversionOptions] = None
    ) -> Path:
        """
        Convert a file, falling back through the family's backends

        Args:
            input_path: Source file
            output_path: Where the output should be written
            input_format: Source format, e.g. '.docx'
            output_format: Target format, e.g. '.md'
            options: Quality and compression hints

        Returns:
            Path of the produced output

        Raises:
            UnsupportedFormatError: If a format is outside the supported set
            BackendUnavailableError: If no present backend handles the job
            ConversionError: If every candidate backend failed
        """
        capabilities = self._capabilities
        if not self.has_backends(capabilities):
            raise BackendUnavailableError(self.category.value, input_format, output_format)

        self.validate_formats(input_format, output_format, capabilities)

        job = ConversionJob(
            input_path=Path(input_path),
            output_path=Path(output_path),
            input_format=input_format,
            output_format=output_format,
            options=options or ConversionOptions(),
        )
        return await self.run_job(job, capabilities)

    def candidates(
        self,
        job: ConversionJob,
        capabilities: CapabilitySet
    ) -> List[ConverterBackend]:
        """Present backends able to handle the job, in priority order"""
        return [
            backend for backend in self.backends
            if backend.is_available(capabilities) and backend.can_convert(job, capabilities)
        ]

    async def run_job(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        """Try candidate backends one after another until one succeeds"""
        candidates = self.candidates(job, capabilities)
        if not candidates:
            raise BackendUnavailableError(
                self.category.value, job.input_format, job.output_format
            )
        return await attempt_in_order(
            self.category.value,
            job.input_format,
            job.output_format,
            [(backend.name, functools.partial(backend.convert, job, capabilities))
             for backend in candidates],
            cleanup=job.output_path,
        )


async def attempt_in_order(
    category: str,
    input_format: str,
    output_format: str,
    attempts: Iterable,
    cleanup: Optional[Path] = None
) -> Any:
    """
    Await each (name, coroutine factory) pair until one succeeds

    Attempts run strictly one after another. Any partial output left at
    `cleanup` by a failed attempt is removed before the next one starts.

    Raises:
        ConversionError: If every attempt failed, carrying the last cause
    """
    last_cause = None
    for name, attempt in attempts:
        try:
            result = await attempt()
            logger.info(f"{category} conversion {input_format} -> {output_format} done by {name}")
            return result
        except BackendFailure as e:
            last_cause = str(e)
        except Exception as e:
            last_cause = f"{name}: {e}"
        logger.warning(
            f"{category} backend {name} failed for {input_format} -> {output_format}: {last_cause}"
        )
        if cleanup is not None:
            await discard_path(cleanup)

    if last_cause is None:
        raise BackendUnavailableError(category, input_format, output_format)
    logger.error(f"All {category} backends failed for {input_format} -> {output_format}")
    raise ConversionError(category, input_format, output_format, last_cause)


def _display(formats: Iterable[str]) -> List[str]:
    return sorted(fmt.lstrip(".") for fmt in formats)


def _listing(formats: Iterable[str]) -> str:
    names = _display(formats)
    return ", ".join(names) if names else "none"
