"""
Aggregator: per-column profiling stats over parsed rows.

Deterministic and network-free: one pass per column, classifying each as
numeric, text or mixed from the Python types the parser resolved.
"""

import logging
import math
from typing import Dict, List

from scouting.schemas import AggregateStat, Cell, Row

logger = logging.getLogger(__name__)


def _is_number(value: Cell) -> bool:
    # bool is an int subclass; booleans never count as numbers here
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _profile_column(values: List[Cell]) -> AggregateStat:
    non_null = [v for v in values if v is not None]
    null_count = len(values) - len(non_null)

    numeric = [v for v in non_null if _is_number(v)]
    if non_null and len(numeric) == len(non_null):
        total = sum(numeric)
        return AggregateStat(
            type="numeric",
            count=len(non_null),
            null_count=null_count,
            min=min(numeric),
            max=max(numeric),
            sum=total,
            avg=total / len(numeric),
        )

    if all(isinstance(v, str) for v in non_null):
        return AggregateStat(
            type="text",
            count=len(non_null),
            null_count=null_count,
            unique_values=len(set(non_null)),
        )

    return AggregateStat(type="mixed", count=len(non_null), null_count=null_count)


def calculate_aggregates(rows: List[Row], headers: List[str]) -> Dict[str, AggregateStat]:
    """
    Profile every header over `rows`.

    A column is numeric when every non-null value is a finite number, text
    when every non-null value is a string (an all-null column counts as text),
    and mixed otherwise. count + null_count always equals len(rows).
    """
    aggregates: Dict[str, AggregateStat] = {}
    for header in headers:
        aggregates[header] = _profile_column([row.get(header) for row in rows])

    logger.info(f"Aggregated {len(headers)} columns over {len(rows)} rows")
    return aggregates


def numeric_averages(aggregates: Dict[str, AggregateStat]) -> Dict[str, float]:
    """{header: avg} for numeric columns, in header order."""
    return {name: stat.avg for name, stat in aggregates.items() if stat.type == "numeric"}


def aggregates_to_dict(aggregates: Dict[str, AggregateStat]) -> Dict[str, dict]:
    return {name: stat.to_dict() for name, stat in aggregates.items()}


def calculate_interpreted_aggregates(interpreted_rows: List[Dict[str, Cell]]) -> Dict[str, dict]:
    """
    count/sum/avg/min/max per interpreted metric name, numbers only.

    Works on rows already re-keyed by interpreted column name, so two source
    columns that mean the same thing across sheets are pooled together.
    """
    values: Dict[str, List[float]] = {}
    for row in interpreted_rows:
        for key, value in row.items():
            if _is_number(value):
                values.setdefault(key, []).append(value)

    result = {}
    for key, nums in values.items():
        total = sum(nums)
        result[key] = {
            "count": len(nums),
            "sum": total,
            "avg": total / len(nums),
            "min": min(nums),
            "max": max(nums),
        }
    return result
