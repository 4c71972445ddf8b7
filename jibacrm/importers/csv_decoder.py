"""
CSV decoder. The first line is the header row; quoted fields may contain
commas, doubled quotes and line breaks.
"""

import io
import logging
from dataclasses import dataclass, field
from typing import Dict, List

import pandas as pd

from jibacrm.errors import DecodeError

logger = logging.getLogger(__name__)


@dataclass
class CsvDocument:
    headers: List[str] = field(default_factory=list)
    rows: List[Dict[str, str]] = field(default_factory=list)


def decode_csv(text: str) -> CsvDocument:
    """Parse CSV text into headers plus one dict per data row (all values str)."""
    if not text.strip():
        raise DecodeError("The CSV file is empty.")

    try:
        df = pd.read_csv(
            io.StringIO(text),
            dtype=str,
            keep_default_na=False,
            skip_blank_lines=True,
            skipinitialspace=True,
        )
    except (pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        raise DecodeError(f"Could not parse CSV file: {e}") from e

    headers = [str(h).strip() for h in df.columns]
    df.columns = headers
    rows = [
        {h: str(v).strip() for h, v in record.items()}
        for record in df.to_dict(orient='records')
    ]
    # A row of only empty cells is not data
    rows = [row for row in rows if any(row.values())]

    logger.debug(f"decode_csv: {len(headers)} columns, {len(rows)} rows")
    return CsvDocument(headers=headers, rows=rows)
