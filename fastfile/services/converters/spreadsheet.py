"""Spreadsheet conversion"""

import csv
from pathlib import Path
from typing import Dict, FrozenSet, Iterable, List, Optional

from ...core.config import Settings
from ...core.logger import get_logger
from ...core.types import ConversionJob, FileCategory
from ..capabilities import CapabilitySet, probe_module
from .base import ConverterBackend, ConverterChain, run_blocking
from .office import convert_with_libreoffice, probe_libreoffice

logger = get_logger(__name__)

DELIMITERS = {".csv": ",", ".tsv": "\t"}
TEXT_FORMATS = frozenset(DELIMITERS)

LIBREOFFICE_FORMATS = frozenset({".csv", ".tsv", ".xls", ".xlsx", ".ods"})
LIBREOFFICE_FILTERS = {
    ".xlsx": "Calc MS Excel 2007 XML",
    ".xls": "MS Excel 97",
    ".ods": "calc8",
    # field separator, text delimiter, charset (76 = UTF-8)
    ".csv": "Text - txt - csv (StarCalc):44,34,76",
    ".tsv": "Text - txt - csv (StarCalc):9,34,76",
}

OPENPYXL_FORMATS = frozenset({".xlsx"}) | TEXT_FORMATS

# Extension -> pandas engine module
PANDAS_READ_ENGINES = {".xls": "xlrd", ".ods": "odf", ".xlsx": "openpyxl"}
PANDAS_WRITE_ENGINES = {".ods": "odf", ".xlsx": "openpyxl"}
# Workbook formats openpyxl alone cannot handle
PANDAS_ONLY_FORMATS = frozenset({".xls", ".ods"})


def pandas_formats(engines: FrozenSet[str], table: Dict[str, str]) -> FrozenSet[str]:
    """Extensions usable with the installed pandas engines"""
    return TEXT_FORMATS | frozenset(ext for ext, engine in table.items() if engine in engines)


def read_delimited(path: Path, delimiter: str) -> List[List[str]]:
    with open(path, newline="", encoding="utf-8-sig", errors="replace") as handle:
        return [row for row in csv.reader(handle, delimiter=delimiter)]


def write_delimited(path: Path, rows: Iterable[Iterable[object]], delimiter: str) -> None:
    with open(path, "w", newline="", encoding="utf-8") as handle:
        writer = csv.writer(handle, delimiter=delimiter)
        for row in rows:
            writer.writerow(["" if value is None else value for value in row])


def convert_delimited(input_path: Path, output_path: Path, input_format: str, output_format: str) -> Path:
    """Re-emit rows parsed from one delimiter with another"""
    rows = read_delimited(input_path, DELIMITERS[input_format])
    write_delimited(output_path, rows, DELIMITERS[output_format])
    return output_path


def _cell_value(value: str):
    """Keep numbers numeric when a text sheet is written to a workbook"""
    text = value.strip()
    if not text:
        return None
    try:
        return int(text)
    except ValueError:
        pass
    try:
        return float(text)
    except ValueError:
        return value


def convert_with_openpyxl(input_path: Path, output_path: Path, input_format: str, output_format: str) -> Path:
    from openpyxl import Workbook, load_workbook

    if input_format == ".xlsx":
        workbook = load_workbook(str(input_path), read_only=True, data_only=True)
        try:
            rows = [list(row) for row in workbook.active.iter_rows(values_only=True)]
        finally:
            workbook.close()
    else:
        rows = [
            [_cell_value(cell) for cell in row]
            for row in read_delimited(input_path, DELIMITERS[input_format])
        ]

    if output_format == ".xlsx":
        workbook = Workbook()
        sheet = workbook.active
        sheet.title = input_path.stem[:31] or "Sheet1"
        for row in rows:
            sheet.append(row)
        workbook.save(str(output_path))
    else:
        write_delimited(output_path, rows, DELIMITERS[output_format])
    return output_path


def convert_with_pandas(input_path: Path, output_path: Path, input_format: str, output_format: str) -> Path:
    """First sheet through a pandas DataFrame, for xls and ods workbooks"""
    import pandas as pd

    if input_format in DELIMITERS:
        frame = pd.DataFrame([
            [_cell_value(cell) for cell in row]
            for row in read_delimited(input_path, DELIMITERS[input_format])
        ])
    else:
        frame = pd.read_excel(
            input_path, sheet_name=0, header=None, engine=PANDAS_READ_ENGINES[input_format]
        )

    if output_format in DELIMITERS:
        frame.to_csv(output_path, sep=DELIMITERS[output_format], header=False, index=False)
    else:
        with pd.ExcelWriter(output_path, engine=PANDAS_WRITE_ENGINES[output_format]) as writer:
            frame.to_excel(
                writer, sheet_name=input_path.stem[:31] or "Sheet1", header=False, index=False
            )
    return output_path


class DelimitedTextBackend(ConverterBackend):
    """Comma and tab separated text, handled in-process"""

    name = "delimited"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return job.input_format in TEXT_FORMATS and job.output_format in TEXT_FORMATS

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        return await run_blocking(
            self.name,
            convert_delimited,
            job.input_path,
            job.output_path,
            job.input_format,
            job.output_format,
            timeout=self.settings.backend_timeout_seconds,
        )


class LibreOfficeSpreadsheetBackend(ConverterBackend):
    """Spreadsheet engine conversion through LibreOffice Calc"""

    name = "libreoffice"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return job.input_format in LIBREOFFICE_FORMATS and job.output_format in LIBREOFFICE_FORMATS

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        return await convert_with_libreoffice(
            capabilities.tool(self.name, "libreoffice"),
            job.input_path,
            job.output_path,
            job.output_format.lstrip("."),
            LIBREOFFICE_FILTERS[job.output_format],
            timeout=self.settings.backend_timeout_seconds,
            temp_root=self.settings.temp_dir,
        )


class OpenpyxlBackend(ConverterBackend):
    """XLSX workbooks read and written with openpyxl"""

    name = "openpyxl"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        return (
            job.input_format in OPENPYXL_FORMATS
            and job.output_format in OPENPYXL_FORMATS
            and ".xlsx" in (job.input_format, job.output_format)
        )

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        return await run_blocking(
            self.name,
            convert_with_openpyxl,
            job.input_path,
            job.output_path,
            job.input_format,
            job.output_format,
            timeout=self.settings.backend_timeout_seconds,
        )


class PandasBackend(ConverterBackend):
    """Legacy Excel and OpenDocument sheets through pandas engines"""

    name = "pandas"

    def can_convert(self, job: ConversionJob, capabilities: CapabilitySet) -> bool:
        engines = capabilities.formats_of(self.name)
        return (
            job.input_format in pandas_formats(engines, PANDAS_READ_ENGINES)
            and job.output_format in pandas_formats(engines, PANDAS_WRITE_ENGINES)
            and bool(PANDAS_ONLY_FORMATS & {job.input_format, job.output_format})
        )

    async def convert(self, job: ConversionJob, capabilities: CapabilitySet) -> Path:
        return await run_blocking(
            self.name,
            convert_with_pandas,
            job.input_path,
            job.output_path,
            job.input_format,
            job.output_format,
            timeout=self.settings.backend_timeout_seconds,
        )


class SpreadsheetConverter(ConverterChain):
    """Converter chain for spreadsheets"""

    category = FileCategory.SPREADSHEET

    def __init__(
        self,
        app_settings: Optional[Settings] = None,
        initial_capabilities: Optional[CapabilitySet] = None
    ):
        super().__init__(
            [],
            app_settings,
            initial_capabilities or CapabilitySet(backends=frozenset({"delimited"})),
        )
        self.backends = [
            DelimitedTextBackend(self.settings),
            LibreOfficeSpreadsheetBackend(self.settings),
            OpenpyxlBackend(self.settings),
            PandasBackend(self.settings),
        ]

    async def probe(self) -> CapabilitySet:
        backends = {"delimited"}
        tools = {}
        formats = {}

        executable = await probe_libreoffice(self.settings.probe_timeout_seconds)
        if executable:
            backends.add("libreoffice")
            tools["libreoffice"] = executable
        if probe_module("openpyxl"):
            backends.add("openpyxl")
        if probe_module("pandas"):
            # Engine modules pandas reads and writes workbooks with
            engines = {"xlrd", "odf", "openpyxl"}
            formats["pandas"] = frozenset(e for e in engines if probe_module(e))
            if formats["pandas"] & {"xlrd", "odf"}:
                backends.add("pandas")

        return CapabilitySet(
            backends=frozenset(backends), tools=tools, formats=formats, probed=True
        )

    def _formats(self, capabilities: CapabilitySet, pandas_engines: Dict[str, str]) -> FrozenSet[str]:
        formats = set()
        if capabilities.has("delimited"):
            formats |= TEXT_FORMATS
        if capabilities.has("libreoffice"):
            formats |= LIBREOFFICE_FORMATS
        if capabilities.has("openpyxl"):
            formats |= OPENPYXL_FORMATS
        if capabilities.has("pandas"):
            formats |= pandas_formats(capabilities.formats_of("pandas"), pandas_engines)
        return frozenset(formats)

    def supported_input_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        return self._formats(capabilities, PANDAS_READ_ENGINES)

    def supported_output_formats(self, capabilities: CapabilitySet) -> FrozenSet[str]:
        return self._formats(capabilities, PANDAS_WRITE_ENGINES)
