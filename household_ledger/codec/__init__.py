"""CSV codec package."""

from household_ledger.codec.csv_transactions import (
    CSV_HEADER,
    CsvDecodeError,
    DecodedRow,
    DecodeResult,
    MalformedRowError,
    decode_line,
    decode_transactions,
    encode_transactions,
    escape_field,
)

__all__ = [
    "CSV_HEADER",
    "CsvDecodeError",
    "DecodedRow",
    "DecodeResult",
    "MalformedRowError",
    "decode_line",
    "decode_transactions",
    "encode_transactions",
    "escape_field",
]
