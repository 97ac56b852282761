"""
CSV Transaction Codec

Reads and writes the ledger's CSV exchange format:

    data,tipo,metodoPagamento,pessoa,categoria,descricao,valor,competencia,cartaoCredito,parcelas

The writer quotes fields that need it. The reader is deliberately lenient
and line-based: it accepts `;` or `,` separators, `DD/MM/YYYY` or ISO dates,
and `.` or `,` decimal separators, but it does NOT understand separators or
escaped quotes inside quoted fields. A quoted field only loses one pair of
surrounding quotes.

DESIGN DECISION: One bad line never aborts a batch. A line that cannot be
decoded is reported as a SkippedRow with its physical line number and the
rest of the file is still read. Only input that is not text at all raises.
Person and card names are returned as written; resolving them needs the
registries and happens in the import flow.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Iterable, Mapping, Optional, Union
from uuid import UUID

from pydantic import BaseModel, Field

from household_ledger.config import get_settings
from household_ledger.models.competency import Competency
from household_ledger.models.ledger import (
    IndividualRef,
    PaymentMethod,
    SkippedRow,
    Transaction,
    TransactionType,
)
from household_ledger.models.money import format_money, to_money

CSV_HEADER = "data,tipo,metodoPagamento,pessoa,categoria,descricao,valor,competencia,cartaoCredito,parcelas"

MIN_FIELDS = 7
DATE_FORMATS = ("%d/%m/%Y", "%Y-%m-%d")


class MalformedRowError(ValueError):
    """A single CSV line could not be decoded."""

    def __init__(self, message: str, line_number: Optional[int] = None, value: Optional[str] = None):
        self.line_number = line_number
        self.value = value
        super().__init__(message)


class CsvDecodeError(ValueError):
    """The input is not readable text."""
    pass


class DecodedRow(BaseModel):
    """One successfully decoded line, before person and card resolution."""

    line_number: int = Field(..., ge=1, description="1-based physical line in the file")
    date: date
    type: TransactionType
    payment_method: PaymentMethod
    person_label: str
    category: str
    description: str
    value: Decimal
    competency: Competency
    credit_card_name: Optional[str] = None
    installments: int = Field(default=1, ge=1)


class DecodeResult(BaseModel):
    rows: list[DecodedRow] = Field(default_factory=list)
    skipped: list[SkippedRow] = Field(default_factory=list)


# =============================================================================
# ENCODING
# =============================================================================

def escape_field(value: Optional[str]) -> str:
    """Quote a field containing a comma, double quote or newline."""
    if value is None:
        return ""
    if "," in value or '"' in value or "\n" in value:
        return '"' + value.replace('"', '""') + '"'
    return value


def format_date(value: date) -> str:
    return f"{value.day:02d}/{value.month:02d}/{value.year:04d}"


def encode_transaction(
    transaction: Transaction,
    person_labels: Mapping[UUID, str],
    card_names: Mapping[UUID, str],
    joint_label: str,
) -> str:
    if isinstance(transaction.person, IndividualRef):
        try:
            person = person_labels[transaction.person.person_id]
        except KeyError:
            raise ValueError(f"No label for person {transaction.person.person_id}")
    else:
        person = joint_label

    card = ""
    if transaction.credit_card_id is not None:
        card = card_names.get(transaction.credit_card_id, "")

    fields = [
        format_date(transaction.date),
        escape_field(transaction.type.label),
        escape_field(transaction.payment_method.label),
        escape_field(person),
        escape_field(transaction.category),
        escape_field(transaction.description),
        format_money(transaction.value),
        str(transaction.competency),
        escape_field(card),
        str(transaction.total_installments),
    ]
    return ",".join(fields)


def encode_transactions(
    transactions: Iterable[Transaction],
    person_labels: Mapping[UUID, str],
    card_names: Mapping[UUID, str],
    joint_label: Optional[str] = None,
) -> str:
    """
    Render transactions as CSV text.

    Args:
        transactions: Rows to export, in output order
        person_labels: Display name per person id
        card_names: Card name per card id
        joint_label: Label written for Joint rows (defaults to the configured one)

    Returns:
        Header plus one line per transaction, each terminated by a newline

    Raises:
        ValueError: a transaction names a person missing from `person_labels`
    """
    if joint_label is None:
        joint_label = get_settings().ledger.joint_label

    lines = [CSV_HEADER]
    lines.extend(
        encode_transaction(t, person_labels, card_names, joint_label)
        for t in transactions
    )
    return "\n".join(lines) + "\n"


# =============================================================================
# DECODING
# =============================================================================

def _unquote(field: str) -> str:
    field = field.strip()
    if len(field) >= 2 and field.startswith('"') and field.endswith('"'):
        field = field[1:-1]
    return field.strip()


def split_line(line: str) -> list[str]:
    separator = ";" if ";" in line else ","
    return [_unquote(f) for f in line.split(separator)]


def parse_date(text: str) -> date:
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text.strip(), fmt).date()
        except ValueError:
            continue
    raise MalformedRowError(f"Invalid date: {text!r}. Use DD/MM/YYYY or YYYY-MM-DD", value=text)


def parse_value(text: str) -> Decimal:
    try:
        return to_money(text.strip().replace(",", "."))
    except ValueError:
        raise MalformedRowError(f"Invalid value: {text!r}", value=text)


def parse_installments(text: Optional[str], default: int) -> int:
    """Installment count, falling back to `default` when missing or invalid."""
    if not text:
        return default
    try:
        count = int(text.strip())
    except ValueError:
        return default
    return count if count >= 1 else default


def parse_label(enum_cls, text: str):
    try:
        return enum_cls.from_label(text)
    except ValueError as e:
        raise MalformedRowError(str(e), value=text)


def decode_line(line: str, line_number: int, default_installments: int = 1) -> DecodedRow:
    """
    Decode one non-blank line.

    Raises:
        MalformedRowError: too few fields or an unparseable value
    """
    fields = split_line(line)
    if len(fields) < MIN_FIELDS:
        raise MalformedRowError(
            f"Incomplete line: expected at least {MIN_FIELDS} fields, got {len(fields)}",
            line_number=line_number,
            value=line,
        )

    def optional(index: int) -> Optional[str]:
        if index < len(fields) and fields[index]:
            return fields[index]
        return None

    try:
        when = parse_date(fields[0])
        competency_text = optional(7)
        if competency_text is None:
            competency = Competency.from_date(when)
        else:
            try:
                competency = Competency.parse(competency_text)
            except ValueError:
                raise MalformedRowError(f"Invalid competency: {competency_text!r}", value=competency_text)

        return DecodedRow(
            line_number=line_number,
            date=when,
            type=parse_label(TransactionType, fields[1]),
            payment_method=parse_label(PaymentMethod, fields[2]),
            person_label=fields[3],
            category=fields[4],
            description=fields[5],
            value=parse_value(fields[6]),
            competency=competency,
            credit_card_name=optional(8),
            installments=parse_installments(optional(9), default_installments),
        )
    except MalformedRowError as e:
        e.line_number = line_number
        raise


def decode_transactions(
    content: Union[str, bytes],
    header_token: Optional[str] = None,
    default_installments: Optional[int] = None,
) -> DecodeResult:
    """
    Decode CSV text into rows, collecting undecodable lines.

    The first line is treated as a header when it contains `header_token`
    (case-insensitive). Blank lines are ignored.

    Raises:
        CsvDecodeError: bytes that are not UTF-8
    """
    if header_token is None or default_installments is None:
        ledger_settings = get_settings().ledger
        header_token = header_token or ledger_settings.import_header_token
        default_installments = default_installments or ledger_settings.default_installments

    if isinstance(content, bytes):
        try:
            content = content.decode("utf-8-sig")
        except UnicodeDecodeError as e:
            raise CsvDecodeError(f"CSV content is not valid UTF-8: {e}")
    content = content.lstrip("\ufeff")

    result = DecodeResult()
    lines = content.split("\n")
    start = 1 if lines and header_token.lower() in lines[0].lower() else 0

    for index in range(start, len(lines)):
        line = lines[index].strip()
        if not line:
            continue
        line_number = index + 1
        try:
            result.rows.append(decode_line(line, line_number, default_installments))
        except MalformedRowError as e:
            result.skipped.append(SkippedRow(line_number=line_number, message=str(e)))

    return result
