from io import BytesIO
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def to_xlsx(rows: Sequence[Dict[str, Any]], sheet_name: str, columns: Optional[List[str]] = None) -> bytes:
    """One-sheet workbook; ``columns`` fixes the header order for empty exports too."""
    df = pd.DataFrame(list(rows), columns=columns)
    buffer = BytesIO()
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        # Excel caps sheet names at 31 characters
        df.to_excel(writer, index=False, sheet_name=sheet_name[:31])
    return buffer.getvalue()


def to_csv(header: Sequence[str], rows: Sequence[Sequence[Any]]) -> str:
    return pd.DataFrame(list(rows), columns=list(header)).to_csv(index=False)
