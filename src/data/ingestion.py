"""
Financial dataset ingestion from exported report files.

Supports the JSON export of the monthly report (P&L summary, variance sheet,
pivot totals) and a flat CSV of the P&L summary. Bad rows are skipped with a
warning; an unreadable file is fatal.

Design:
- Format detection from the file extension, or explicit format
- Sources yield raw dicts; validation into schema models happens in one place
- Rows lacking their identifying column are dropped, as the report import does
- Duplicate store names keep the first occurrence
"""

import csv
import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Set, Tuple, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from src.core.exceptions import DataValidationError
from src.data.schema import FinancialDataset, PivotTotal, StoreRecord, VarianceLineItem

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

SECTION_STORES = "pl_summary"
SECTION_VARIANCE = "variance_data"
SECTION_PIVOT = "pivot_totals"


class DataIngestionError(DataValidationError):
    """Raised when a dataset file cannot be read at all."""
    pass


class BaseDatasetSource(ABC):
    """
    Abstract base class for dataset sources.

    Each source yields (section, raw_row) pairs. Sections match the keys of the
    JSON export: pl_summary, variance_data, pivot_totals.
    """

    def __init__(self, filepath: Union[str, Path], encoding: str = "utf-8"):
        self.filepath = Path(filepath)
        self.encoding = encoding

        if not self.filepath.exists():
            raise DataIngestionError(f"Dataset file not found: {self.filepath}")

    @abstractmethod
    def ingest(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        pass


class JSONDatasetSource(BaseDatasetSource):
    """
    Reads the JSON report export.

    Example:
        {"pl_summary": [{"store_name": "Avenues", "sales": 120000, ...}],
         "variance_data": [{"store": "Avenues", "line_item": "NET SALES", ...}],
         "pivot_totals": [{"gl_account": "Rent", "total": 5400.0}]}

    Missing sections are treated as empty.
    """

    def ingest(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        try:
            with open(self.filepath, "r", encoding=self.encoding) as f:
                document = json.loads(f.read().lstrip("\ufeff"))
        except json.JSONDecodeError as e:
            raise DataIngestionError(f"Invalid JSON dataset: {e}") from e
        except OSError as e:
            logger.error(f"Error reading dataset file {self.filepath}: {e}")
            raise DataIngestionError(f"Failed to read dataset: {e}") from e

        if not isinstance(document, dict):
            raise DataIngestionError("JSON dataset must be an object of sections")

        for section in (SECTION_STORES, SECTION_VARIANCE, SECTION_PIVOT):
            rows = document.get(section) or []
            if not isinstance(rows, list):
                logger.warning(f"Section {section} is not a list; ignoring")
                continue
            for idx, row in enumerate(rows):
                if isinstance(row, dict):
                    yield section, row
                else:
                    logger.warning(f"Non-dict entry in {section} at index {idx}: {type(row)}")


class CSVStoreSource(BaseDatasetSource):
    """
    Reads a P&L summary CSV, one store per row, headers in the first row.

    Example:
        store_name,sales,budget,gross_profit_pct,net_profit_pct
        Avenues,120000,110000,0.68,0.21
    """

    def __init__(
        self,
        filepath: Union[str, Path],
        encoding: str = "utf-8",
        delimiter: str = ",",
    ):
        super().__init__(filepath, encoding)
        self.delimiter = delimiter

    def ingest(self) -> Iterator[Tuple[str, Dict[str, Any]]]:
        try:
            with open(self.filepath, "r", encoding=self.encoding, newline="") as f:
                reader = csv.DictReader(f, delimiter=self.delimiter)

                if reader.fieldnames is None:
                    raise DataIngestionError("CSV file is empty")

                reader.fieldnames = [
                    name.lstrip("\ufeff").strip() if isinstance(name, str) else name
                    for name in reader.fieldnames
                ]

                for line_num, row in enumerate(reader, start=2):
                    if all(v in (None, "") for v in row.values()):
                        logger.warning(f"Empty row at line {line_num}")
                        continue
                    row.pop(None, None)  # overflow cells of ragged rows
                    yield SECTION_STORES, row
        except DataIngestionError:
            raise
        except (OSError, csv.Error) as e:
            logger.error(f"Error reading CSV dataset {self.filepath}: {e}")
            raise DataIngestionError(f"Failed to read CSV dataset: {e}") from e


def _validate_rows(
    rows: List[Dict[str, Any]],
    model: Type[ModelT],
    key_fields: Tuple[str, ...],
    section: str,
) -> List[ModelT]:
    """
    Validate raw rows into models, skipping rows without their key columns.

    Key columns are looked up under both snake_case and camelCase spellings.
    """
    valid: List[ModelT] = []
    for idx, row in enumerate(rows):
        if not all(_row_value(row, key) for key in key_fields):
            logger.debug(f"Skipping {section} row {idx}: missing {key_fields}")
            continue
        try:
            valid.append(model.model_validate(row))
        except ValidationError as e:
            logger.warning(f"Invalid {section} row {idx}: {e.error_count()} error(s); skipped")
    return valid


def _row_value(row: Dict[str, Any], key: str) -> Optional[Any]:
    head, *rest = key.split("_")
    camel = head + "".join(part.title() for part in rest)
    value = row.get(key, row.get(camel))
    if isinstance(value, str):
        value = value.strip()
    return value or None


def _dedupe_stores(stores: List[StoreRecord]) -> List[StoreRecord]:
    seen: Set[str] = set()
    unique: List[StoreRecord] = []
    for store in stores:
        if store.store_name in seen:
            logger.warning(f"Duplicate store {store.store_name!r}; keeping first occurrence")
            continue
        seen.add(store.store_name)
        unique.append(store)
    return unique


def load_financial_dataset(
    filepath: Union[str, Path],
    format: str = "auto",
) -> FinancialDataset:
    """
    Load a reporting-period snapshot from a file.

    Args:
        filepath: Path to the dataset file
        format: "json", "csv", or "auto" (detected from the extension)

    Returns:
        FinancialDataset with validated stores, variance rows and pivot totals

    Raises:
        DataIngestionError: If the file is missing, unreadable, or the format unknown
    """
    filepath = Path(filepath)

    if format == "auto":
        suffix = filepath.suffix.lower()
        if suffix == ".json":
            format = "json"
        elif suffix == ".csv":
            format = "csv"
        else:
            raise DataIngestionError(f"Cannot detect dataset format from {filepath.name}")

    if format == "json":
        source: BaseDatasetSource = JSONDatasetSource(filepath)
    elif format == "csv":
        source = CSVStoreSource(filepath)
    else:
        raise DataIngestionError(f"Unknown format: {format}")

    sections: Dict[str, List[Dict[str, Any]]] = {
        SECTION_STORES: [],
        SECTION_VARIANCE: [],
        SECTION_PIVOT: [],
    }
    for section, row in source.ingest():
        sections[section].append(row)

    stores = _validate_rows(sections[SECTION_STORES], StoreRecord, ("store_name",), SECTION_STORES)
    variance = _validate_rows(
        sections[SECTION_VARIANCE], VarianceLineItem, ("store", "line_item"), SECTION_VARIANCE
    )
    pivot = _validate_rows(sections[SECTION_PIVOT], PivotTotal, ("gl_account",), SECTION_PIVOT)

    dataset = FinancialDataset(
        stores=_dedupe_stores(stores),
        variance=variance,
        pivot_totals=pivot,
    )
    logger.info(
        "Loaded %d stores, %d variance rows, %d pivot totals from %s",
        len(dataset.stores),
        len(dataset.variance),
        len(dataset.pivot_totals),
        filepath,
    )
    return dataset
