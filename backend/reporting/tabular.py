"""Parsing of uploaded CSV / Excel sheets into header-keyed row dicts."""
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from backend.core.errors import ValidationError


def detect_file_type(content: bytes, filename: Optional[str]) -> str:
    suffix = Path(filename or "").suffix.lower()
    if suffix in {".csv", ".txt"}:
        return "csv"
    if suffix in {".xlsx", ".xlsm"}:
        return "excel"
    # xlsx files are zip archives
    if content.startswith(b"PK"):
        return "excel"
    return "unknown"


def read_rows(content: bytes, filename: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Every cell is read as text and blank cells come back as ``""`` so the
    reconcilers see what the user typed (leading zeros in mobiles, IDs...).
    """
    file_type = detect_file_type(content, filename)
    buffer = BytesIO(content)
    try:
        if file_type == "csv":
            df = pd.read_csv(buffer, dtype=str, keep_default_na=False, skipinitialspace=True)
        elif file_type == "excel":
            df = pd.read_excel(buffer, dtype=str, keep_default_na=False, engine="openpyxl")
        else:
            raise ValidationError("Unsupported file type. Upload a CSV or XLSX file.")
    except pd.errors.EmptyDataError as e:
        raise ValidationError("Uploaded file contains no data.") from e
    except (ValueError, pd.errors.ParserError) as e:
        raise ValidationError(f"Could not parse {filename or 'upload'}: {e}") from e

    if df.empty:
        raise ValidationError("Uploaded file contains no data.")
    df.columns = [str(c).strip() for c in df.columns]
    df = df.fillna("")
    return df.to_dict(orient="records")
