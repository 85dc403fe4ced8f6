"""
Terminology CSV Import/Export

Columns: term, definition, do_not_translate
Booleans accept true/false, yes/no and 1/0 (any case); an empty cell is false.
"""

import csv
import io
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from tmcore.exceptions import ValidationError
from .schemas import RowIssue

logger = logging.getLogger(__name__)

FIELDNAMES = ["term", "definition", "do_not_translate"]

TRUE_VALUES = {"true", "yes", "1"}
FALSE_VALUES = {"false", "no", "0", ""}


def parse_bool(value: Optional[str]) -> bool:
    """Parse a CSV boolean cell; raises ValueError on anything else."""
    text = (value or "").strip().lower()
    if text in TRUE_VALUES:
        return True
    if text in FALSE_VALUES:
        return False
    raise ValueError(f"not a boolean: {value!r}")


@dataclass
class TermRow:
    """One parsed CSV row."""
    row: int
    term: str
    definition: Optional[str] = None
    do_not_translate: bool = False


def export_terms_to_csv(terms: List[Dict]) -> str:
    """
    Export terms to CSV.

    Args:
        terms: List of term dicts

    Returns:
        CSV string
    """
    output = io.StringIO()
    writer = csv.DictWriter(output, fieldnames=FIELDNAMES, extrasaction="ignore")
    writer.writeheader()

    for term in terms:
        row = {k: term.get(k) or "" for k in FIELDNAMES}
        # Convert bool to string for CSV
        row["do_not_translate"] = "true" if term.get("do_not_translate") else "false"
        writer.writerow(row)

    return output.getvalue()


def parse_terms_csv(
    content: str,
    max_term_length: int = 100,
) -> Tuple[List[TermRow], List[RowIssue], List[RowIssue], int]:
    """
    Parse terminology CSV, validating each row on its own.

    Returns:
        (rows, warnings, errors, total_rows). Rows with an empty term or a malformed
        boolean are left out and reported; a term over max_term_length is
        kept with a warning.

    Raises:
        ValidationError: the header lacks the ``term`` column.
    """
    if content.startswith("\ufeff"):
        content = content[1:]

    reader = csv.DictReader(io.StringIO(content))
    fieldnames = [name.strip().lower() for name in (reader.fieldnames or [])]
    if "term" not in fieldnames:
        raise ValidationError("csv", "missing required column 'term'", reader.fieldnames)
    reader.fieldnames = fieldnames

    rows: List[TermRow] = []
    warnings: List[RowIssue] = []
    errors: List[RowIssue] = []
    total = 0

    for record in reader:
        total += 1
        line = reader.line_num
        term = (record.get("term") or "").strip()
        definition = (record.get("definition") or "").strip() or None
        raw_flag = record.get("do_not_translate")

        if not term:
            warnings.append(RowIssue(row=line, field="term", message="Empty term skipped"))
            continue

        try:
            do_not_translate = parse_bool(raw_flag)
        except ValueError:
            errors.append(RowIssue(
                row=line,
                field="do_not_translate",
                message="Expected true/false, yes/no or 1/0",
                value=raw_flag,
            ))
            continue

        if len(term) > max_term_length:
            warnings.append(RowIssue(
                row=line,
                field="term",
                message=f"Term longer than {max_term_length} characters",
                value=term[:50],
            ))

        rows.append(TermRow(
            row=line,
            term=term,
            definition=definition,
            do_not_translate=do_not_translate,
        ))

    logger.info(f"Parsed {len(rows)} term rows from CSV ({len(errors)} errors)")
    return rows, warnings, errors, total
