"""
CSV import and export of wallet records and redistribution results.

Import expects the columns walletAddress, tokenName, investedAmount,
entryMarketCap and exitMarketCap in any order and letter case.
"""

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Iterable, Optional

import pandas as pd

from .errors import CsvFormatError
from .models import CalculatedWallet, WalletRecord

EXPECTED_COLUMNS = ["walletaddress", "tokenname", "investedamount", "entrymarketcap", "exitmarketcap"]

EXPORT_COLUMNS = [
    "Wallet Address",
    "Token Name",
    "Invested Amount",
    "Raw P&L",
    "P&L %",
    "Redistribution Amount",
    "Final Balance",
]


def _parse_number(value) -> Decimal:
    """Parse a CSV cell as a number; anything unparsable counts as 0."""
    if value is None or (isinstance(value, float) and pd.isna(value)):
        return Decimal("0")
    try:
        number = Decimal(str(value).strip())
    except InvalidOperation:
        return Decimal("0")
    return number if number.is_finite() else Decimal("0")


def read_wallet_csv(source) -> list[WalletRecord]:
    """
    Read wallet records from a CSV path or file-like object.

    Rows with fewer than five values are skipped. Record ids are
    ``csv-<row>`` with rows counted from 1 after the header.
    """
    try:
        df = pd.read_csv(source, dtype=str, skipinitialspace=True, keep_default_na=False)
    except pd.errors.EmptyDataError as e:
        raise CsvFormatError("CSV must contain header and at least one data row.") from e

    df.columns = [str(c).strip().lower() for c in df.columns]
    missing = [c for c in EXPECTED_COLUMNS if c not in df.columns]
    if missing:
        raise CsvFormatError(
            "CSV must contain columns: walletAddress, tokenName, investedAmount, "
            "entryMarketCap, exitMarketCap"
        )
    if df.empty:
        raise CsvFormatError("CSV must contain header and at least one data row.")

    records = []
    for row_number, (_, row) in enumerate(df.iterrows(), start=1):
        values = [v for v in row.tolist() if not pd.isna(v) and str(v).strip()]
        if len(values) < len(EXPECTED_COLUMNS):
            continue

        try:
            records.append(
                WalletRecord(
                    id=f"csv-{row_number}",
                    wallet_address=str(row["walletaddress"]).strip(),
                    token_name=str(row["tokenname"]).strip(),
                    invested_amount=_parse_number(row["investedamount"]),
                    entry_market_cap=_parse_number(row["entrymarketcap"]),
                    exit_market_cap=_parse_number(row["exitmarketcap"]),
                )
            )
        except ValueError as e:
            raise CsvFormatError(f"Invalid values on row {row_number}: {e}") from e

    return records


def results_frame(calculated: Iterable[CalculatedWallet]) -> pd.DataFrame:
    """Build the export table for a redistribution pass."""
    rows = [
        [
            w.wallet_address,
            w.token_name,
            f"{w.invested_amount:.2f}",
            f"{w.raw_pnl:.2f}",
            f"{w.pnl_percentage:.2f}%",
            f"{w.redistribution_amount:.2f}",
            f"{w.final_balance:.2f}",
        ]
        for w in calculated
    ]
    return pd.DataFrame(rows, columns=EXPORT_COLUMNS)


def default_export_name(prefix: str = "memecoin-pnl-redistribution", suffix: str = "csv") -> str:
    return f"{prefix}-{date.today().isoformat()}.{suffix}"


def write_results_csv(calculated: Iterable[CalculatedWallet], path: Optional[str] = None) -> str:
    """Write results to CSV and return the path written."""
    path = path or default_export_name()
    results_frame(calculated).to_csv(path, index=False)
    return path


def pnl_card(
    records: Iterable[WalletRecord],
    calculated: Optional[Iterable[CalculatedWallet]] = None,
    excluded: Optional[dict[str, str]] = None,
) -> str:
    """
    Render the plain-text PnL card (wallet, invested amount, redistribution).

    Wallets listed in ``excluded`` (id -> reason) are marked rather than
    shown with a zero redistribution.
    """
    records = list(records)
    if not records:
        return ""

    by_id = {w.id: w.redistribution_amount for w in (calculated or [])}
    excluded = excluded or {}
    lines = ["PnL Card", "", "Wallet Address, Invested Amount, Redistribution"]
    for record in records:
        if record.id in excluded:
            redistribution = f"excluded ({excluded[record.id]})"
        else:
            redistribution = f"${by_id.get(record.id, Decimal('0')):.2f}"
        lines.append(f"{record.wallet_address}, ${record.invested_amount:.2f}, {redistribution}")
    return "\n".join(lines) + "\n"
