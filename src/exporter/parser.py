"""
Value Parser for Database Status Columns

Converts raw status cells returned by the database into numeric values.
Cells arrive as text ("Yes", "OFF", "mysql-bin.000123", "42"), raw bytes or
numbers already converted by the driver, depending on the column type.
"""

import logging
import math
import re
from decimal import Decimal
from typing import Optional, Tuple, Union

logger = logging.getLogger(__name__)

TRUE_VALUES = ("Yes", "ON")
FALSE_VALUES = ("No", "OFF")

# Rotated log file names, e.g. "mysql-bin.000123". The prefix needs a
# character other than digits and dots so IP addresses are not matched.
LOG_FILE_RE = re.compile(r"^(.*[^\d.].*)\.(\d+)$", re.DOTALL)

RawValue = Optional[Union[bytes, bytearray, str, int, float, Decimal]]


def _to_float(raw: Union[str, int, float, Decimal]) -> Tuple[float, bool]:
    try:
        value = float(raw)
    except (ValueError, OverflowError):
        return 0.0, False

    if not math.isfinite(value):
        return 0.0, False

    return value, True


def parse_status(raw: RawValue) -> Tuple[float, bool]:
    """
    Parse a raw status cell into a float.

    Args:
        raw: Cell value as returned by the driver: text, bytes, a
            number already converted by the driver, or None for NULL

    Returns:
        Tuple of (value, ok). When ok is False the value is meaningless and
        the caller must not emit an observation for the cell.
    """
    if raw is None:
        return 0.0, False

    if isinstance(raw, (int, float, Decimal)):
        return _to_float(raw)

    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError:
            return 0.0, False
    else:
        text = str(raw)

    if text in TRUE_VALUES:
        return 1.0, True
    if text in FALSE_VALUES:
        return 0.0, True

    match = LOG_FILE_RE.match(text)
    if match and not _to_float(match.group(1))[1]:
        return _to_float(match.group(2))

    return _to_float(text.strip())
