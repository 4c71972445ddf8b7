"""
Import Decoders
Turn a CSV, vCard or JSON file into partial-contact records for
crm.import_contacts(). Decoding never touches the store: a DecodeError or
NoValidContactsError leaves it exactly as it was.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

from jibacrm.engine.clock import now_ms
from jibacrm.engine.crm import import_contacts, is_importable
from jibacrm.errors import DecodeError, NoValidContactsError, ValidationError
from jibacrm.importers.csv_decoder import decode_csv
from jibacrm.importers.json_decoder import decode_json
from jibacrm.importers.mapping import apply_mapping, apply_overrides, suggest_mapping
from jibacrm.importers.vcf_decoder import decode_vcf
from jibacrm.logging_config import log_call

logger = logging.getLogger(__name__)

FILE_TYPES = {'.csv': 'CSV', '.vcf': 'VCF', '.json': 'JSON'}


@dataclass
class ImportBatch:
    """Decoded, validated records ready for import_contacts()."""
    file_type: str
    records: List[Dict[str, Any]] = field(default_factory=list)
    skipped: int = 0
    headers: List[str] = field(default_factory=list)
    mapping: Dict[str, Optional[str]] = field(default_factory=dict)


def read_text(path: Path) -> str:
    try:
        with open(path, encoding='utf-8-sig') as f:
            return f.read()
    except UnicodeDecodeError as e:
        raise DecodeError(f"{path.name} is not UTF-8 text: {e}") from e
    except OSError as e:
        raise DecodeError(f"Cannot read {path}: {e}") from e


def validate_records(records: List[Dict[str, Any]], file_type: str) -> List[Dict[str, Any]]:
    """Keep records with both a name and a phone; none left is an error."""
    valid = [r for r in records if is_importable(r)]
    if not valid:
        raise NoValidContactsError(
            f"No valid contacts with both a name and phone number were found in the {file_type} file.")
    if len(valid) < len(records):
        logger.warning(f"Skipping {len(records) - len(valid)} of {len(records)} {file_type} records "
                       f"without a name or phone")
    return valid


def decode_file(
    path: Path,
    mapping_overrides: Optional[Dict[str, Optional[str]]] = None,
    now: Optional[int] = None,
) -> ImportBatch:
    """
    Decode and validate an import file, choosing the decoder by extension.
    mapping_overrides only applies to CSV: {field label: header or None}.
    """
    path = Path(path)
    file_type = FILE_TYPES.get(path.suffix.lower())
    if file_type is None:
        raise DecodeError(f"Unsupported file type {path.suffix!r}. Use .csv, .vcf or .json.")

    text = read_text(path)
    batch = ImportBatch(file_type=file_type)

    if file_type == 'CSV':
        document = decode_csv(text)
        batch.headers = document.headers
        batch.mapping = apply_overrides(suggest_mapping(document.headers), mapping_overrides or {},
                                        document.headers)
        if not batch.mapping.get('Name') or not batch.mapping.get('Phone'):
            raise ValidationError('Validation failed. Ensure "Name" and "Phone" fields are mapped and not empty.')
        records = apply_mapping(document.rows, batch.mapping, now if now is not None else now_ms())
    elif file_type == 'VCF':
        records = decode_vcf(text)
    else:
        records = decode_json(text)

    batch.records = validate_records(records, file_type)
    batch.skipped = len(records) - len(batch.records)
    logger.info(f"Decoded {path.name}: {len(batch.records)} valid, {batch.skipped} skipped")
    return batch


@log_call
def import_file(
    path: Path,
    mapping_overrides: Optional[Dict[str, Optional[str]]] = None,
    now: Optional[int] = None,
) -> int:
    """Decode a file and import every valid record. Returns the number created."""
    batch = decode_file(path, mapping_overrides, now=now)
    return import_contacts(batch.records, now=now)
