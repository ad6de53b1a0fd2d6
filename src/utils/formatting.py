from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Sequence

CENT = Decimal("0.01")


def round_to_cent(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_decimal(value: Decimal) -> str:
    quantized = value.normalize()
    # Avoid scientific notation for integers.
    if quantized == quantized.to_integral():
        return f"{quantized:.0f}"
    return format(quantized, "f")


def format_currency(value: Decimal) -> str:
    return f"{round_to_cent(value):.2f}"


def format_table(columns: Sequence[str], rows: Sequence[Sequence[str]]) -> list[str]:
    """Header, separator and rows; the first column is left aligned, the others right aligned."""
    widths = [max([len(column), *(len(row[idx]) for row in rows)]) for idx, column in enumerate(columns)]

    def _line(cells: Sequence[str]) -> str:
        return " ".join(
            f"{cell:<{width}}" if idx == 0 else f"{cell:>{width}}"
            for idx, (cell, width) in enumerate(zip(cells, widths))
        )

    header = _line(columns)
    return [header, "-" * len(header), *(_line(row) for row in rows)]
