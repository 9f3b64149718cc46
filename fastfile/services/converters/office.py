"""Office suite invocation shared by document, spreadsheet and presentation families"""

import shutil
import tempfile
from pathlib import Path
from typing import Optional

from ...core.exceptions import BackendFailure
from ...core.logger import get_logger
from ..capabilities import probe_first_command
from .base import discard_path, run_command

logger = get_logger(__name__)

LIBREOFFICE_COMMANDS = (("libreoffice", "--version"), ("soffice", "--version"))
UNOCONV_COMMANDS = (("unoconv", "--version"),)


async def probe_libreoffice(timeout: float) -> Optional[str]:
    """Return the LibreOffice executable name, or None when absent"""
    return await probe_first_command(LIBREOFFICE_COMMANDS, timeout=timeout, expect="office")


async def probe_unoconv(timeout: float) -> Optional[str]:
    return await probe_first_command(UNOCONV_COMMANDS, timeout=timeout)


async def convert_with_libreoffice(
    executable: str,
    input_path: Path,
    output_path: Path,
    target_extension: str,
    filter_name: Optional[str] = None,
    timeout: float = 600,
    temp_root: Optional[Path] = None,
    backend: str = "libreoffice"
) -> Path:
    """
    Convert a file with a headless LibreOffice

    Each call gets its own output directory and user profile so concurrent
    conversions do not share LibreOffice state.

    Args:
        executable: LibreOffice binary found during probing
        input_path: Source file
        output_path: Final output location
        target_extension: Target extension without the dot, e.g. 'xlsx'
        filter_name: Export filter, e.g. 'Calc MS Excel 2007 XML'
        timeout: Seconds before LibreOffice is killed
        temp_root: Parent directory for the per-call working directory
        backend: Backend name used in failure messages

    Returns:
        Path to the converted file

    Raises:
        BackendFailure: If LibreOffice fails or produces no output
    """
    if temp_root is not None:
        temp_root.mkdir(parents=True, exist_ok=True)
    work_dir = Path(tempfile.mkdtemp(prefix="office_", dir=temp_root))
    try:
        out_dir = work_dir / "out"
        profile_dir = work_dir / "profile"
        out_dir.mkdir()
        convert_to = f"{target_extension}:{filter_name}" if filter_name else target_extension

        await run_command(
            backend,
            [
                executable,
                f"-env:UserInstallation={profile_dir.resolve().as_uri()}",
                "--headless",
                "--convert-to",
                convert_to,
                "--outdir",
                str(out_dir),
                str(input_path),
            ],
            timeout=timeout,
        )

        produced = out_dir / f"{input_path.stem}.{target_extension}"
        if not produced.exists():
            raise BackendFailure(backend, f"expected output {produced.name} was not created")

        output_path.parent.mkdir(parents=True, exist_ok=True)
        shutil.move(str(produced), str(output_path))
        return output_path
    finally:
        await discard_path(work_dir)


async def convert_with_unoconv(
    executable: str,
    input_path: Path,
    output_path: Path,
    target_extension: str,
    timeout: float = 600
) -> Path:
    """Convert a file with unoconv"""
    await run_command(
        "unoconv",
        [executable, "-f", target_extension, "-o", str(output_path), str(input_path)],
        timeout=timeout,
    )
    if not output_path.exists():
        raise BackendFailure("unoconv", f"expected output {output_path.name} was not created")
    return output_path
