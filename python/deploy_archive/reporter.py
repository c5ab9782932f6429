"""
Completion reporting for finalized archives.
"""

import math
import os
from colored_logger import get_colored_logger

from .errors import ReadError, SourceNotFound
from .models import CompletionReport

logger = get_colored_logger(__name__)

UNIT_FACTORS = {
    "B": 1,
    "KB": 1024,
    "MB": 1024 * 1024,
    "GB": 1024 * 1024 * 1024,
}


def round_half_up(value: float, precision: int = 0) -> float:
    """Round like JavaScript's Math.round rather than to even."""
    factor = 10**precision
    return math.floor(value * factor + 0.5) / factor


def format_size(size_bytes: int, unit: str = "MB", precision: int = 0) -> str:
    """Format a byte count in ``unit`` rounded half up to ``precision`` places."""
    try:
        factor = UNIT_FACTORS[unit.upper()]
    except KeyError:
        raise ValueError(f"Unknown size unit: {unit}") from None

    value = round_half_up(size_bytes / factor, precision)
    if precision == 0:
        return f"{int(value)} {unit.upper()}"
    return f"{value:.{precision}f} {unit.upper()}"


class CompletionReporter:
    """Reads the size of a finalized archive and announces it."""

    def __init__(self, unit: str = "MB", precision: int = 0):
        if unit.upper() not in UNIT_FACTORS:
            raise ValueError(f"Unknown size unit: {unit}")
        self.unit = unit.upper()
        self.precision = max(0, precision)

    def report(self, output_path: str) -> CompletionReport:
        """Build the report for ``output_path`` and log the success message."""
        try:
            size_bytes = os.path.getsize(output_path)
        except FileNotFoundError as e:
            raise SourceNotFound(output_path) from e
        except OSError as e:
            raise ReadError(output_path, str(e)) from e

        report = CompletionReport(
            final_size_bytes=size_bytes,
            formatted_size=format_size(size_bytes, self.unit, self.precision),
            output_path=output_path,
        )

        logger.success("✅ %s created successfully", output_path)
        logger.success("Size: %s", report.formatted_size)
        return report
