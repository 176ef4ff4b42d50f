"""
Benchmark comparator: places observed averages against static league tables.

Tables live in benchmarks.yaml, keyed by domain (sport) and competition
level. Percentiles are a z-score approximation that assumes the population
standard deviation is a fixed share of the league mean; treat them as
estimates until real variance data replaces the ratio.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import yaml

from scouting.schemas import Assessment, BenchmarkComparison

logger = logging.getLogger(__name__)

BENCHMARKS_FILE = Path(__file__).resolve().parent / "benchmarks.yaml"
DEFAULT_STDDEV_RATIO = 0.15
MIN_SUBSTRING_ALIAS = 3


@dataclass
class MetricMapping:
    key: str
    aliases: List[str]
    higher_is_better: bool = True


@dataclass
class LeagueTable:
    level: str
    source: str
    year: int
    averages: Dict[str, float]
    aliases: List[str] = field(default_factory=list)


@dataclass
class DomainBenchmarks:
    domain: str
    aliases: List[str]
    default_level: str
    levels: Dict[str, LeagueTable]
    metrics: List[MetricMapping]

    def resolve_level(self, level: Optional[str]) -> LeagueTable:
        wanted = (level or self.default_level).strip().lower()
        for table in self.levels.values():
            if wanted == table.level or wanted in table.aliases:
                return table
        logger.warning(f"Unknown competition level '{level}' for {self.domain}; using {self.default_level}")
        return self.levels[self.default_level]


class BenchmarkCatalog:
    """All domain tables loaded from YAML."""

    def __init__(self, path: Path = BENCHMARKS_FILE):
        self.path = Path(path)
        self.domains: Dict[str, DomainBenchmarks] = {}
        self._load()

    def _load(self):
        with open(self.path, "r", encoding="utf-8") as fh:
            raw = yaml.safe_load(fh) or {}

        for domain, data in (raw.get("domains") or {}).items():
            levels = {
                name: LeagueTable(
                    level=name,
                    source=level_data.get("source", name),
                    year=int(level_data.get("year", 0)),
                    averages={k: float(v) for k, v in (level_data.get("averages") or {}).items()},
                    aliases=[a.lower() for a in level_data.get("aliases", [])],
                )
                for name, level_data in (data.get("levels") or {}).items()
            }
            default_level = data.get("default_level") or next(iter(levels))
            if default_level not in levels:
                raise ValueError(f"default_level '{default_level}' missing for domain '{domain}'")
            metrics = [
                MetricMapping(
                    key=m["key"],
                    aliases=[a.lower() for a in m.get("aliases", [])],
                    higher_is_better=bool(m.get("higher_is_better", True)),
                )
                for m in data.get("metrics", [])
            ]
            self.domains[domain] = DomainBenchmarks(
                domain=domain,
                aliases=[a.lower() for a in data.get("aliases", [])],
                default_level=default_level,
                levels=levels,
                metrics=metrics,
            )
        logger.info(f"Loaded benchmark tables for {len(self.domains)} domain(s) from {self.path.name}")

    def get(self, domain: Optional[str]) -> Optional[DomainBenchmarks]:
        wanted = (domain or "").strip().lower()
        for bench in self.domains.values():
            if wanted == bench.domain or wanted in bench.aliases:
                return bench
        return None


_catalog: Optional[BenchmarkCatalog] = None


def get_catalog() -> BenchmarkCatalog:
    global _catalog
    if _catalog is None:
        _catalog = BenchmarkCatalog()
    return _catalog


def is_supported_domain(domain: Optional[str], catalog: Optional[BenchmarkCatalog] = None) -> bool:
    return (catalog or get_catalog()).get(domain) is not None


def calculate_percentile(
    value: float,
    league_avg: float,
    higher_is_better: bool = True,
    stddev_ratio: float = DEFAULT_STDDEV_RATIO,
) -> int:
    """Estimated percentile in [1, 99]; inverted when lower values are better."""
    std_dev = abs(league_avg) * stddev_ratio
    if std_dev == 0:
        raise ValueError("league average must be non-zero")
    z_score = (value - league_avg) / std_dev
    percentile = 50 + z_score * 15
    if not higher_is_better:
        percentile = 100 - percentile
    # round half up; Python's round() is banker's rounding
    return max(1, min(99, int(math.floor(percentile + 0.5))))


def assess(percentile: int) -> Assessment:
    if percentile >= 90:
        return "elite"
    if percentile >= 70:
        return "above_average"
    if percentile >= 40:
        return "average"
    if percentile >= 20:
        return "below_average"
    return "needs_work"


def _has_word(alias: str, text: str) -> bool:
    return re.search(rf"(?<![a-z0-9]){re.escape(alias)}(?![a-z0-9])", text) is not None


def _match_column(mapping: MetricMapping, columns: List[str], taken: set) -> Optional[str]:
    """
    Exact key, then an alias as a whole word, then an alias as a substring.

    Aliases shorter than MIN_SUBSTRING_ALIAS only match as whole words, so
    "ba" claims "BA" or "ba_vs_lhp" but never "at_bats".
    """
    candidates = [c for c in columns if c not in taken]
    for col in candidates:
        if col.lower() == mapping.key:
            return col
    for col in candidates:
        lowered = col.lower()
        if any(_has_word(alias, lowered) for alias in mapping.aliases):
            return col
    long_aliases = [a for a in mapping.aliases if len(a) >= MIN_SUBSTRING_ALIAS]
    for col in candidates:
        lowered = col.lower()
        if any(alias in lowered for alias in long_aliases):
            return col
    return None


def compare_to_benchmarks(
    metrics: Dict[str, float],
    level: Optional[str] = None,
    domain: Optional[str] = "baseball",
    stddev_ratio: float = DEFAULT_STDDEV_RATIO,
    catalog: Optional[BenchmarkCatalog] = None,
) -> List[BenchmarkComparison]:
    """
    Compare observed metric averages against the league table.

    `metrics` maps a column name to its observed value. Each benchmark metric
    claims at most one column (see _match_column) and a
    column is never claimed twice. Unmatched metrics are omitted.
    """
    bench = (catalog or get_catalog()).get(domain)
    if bench is None:
        logger.info(f"No benchmark table for domain '{domain}'")
        return []

    table = bench.resolve_level(level)
    columns = [c for c, v in metrics.items() if isinstance(v, (int, float)) and not isinstance(v, bool)]
    taken: set = set()
    comparisons: List[BenchmarkComparison] = []

    for mapping in bench.metrics:
        league_avg = table.averages.get(mapping.key)
        if not league_avg:
            continue
        column = _match_column(mapping, columns, taken)
        if column is None:
            continue
        taken.add(column)
        value = float(metrics[column])
        percentile = calculate_percentile(value, league_avg, mapping.higher_is_better, stddev_ratio)
        comparisons.append(BenchmarkComparison(
            metric=mapping.key,
            value=value,
            league_average=league_avg,
            percentile=percentile,
            assessment=assess(percentile),
            source_column=column,
        ))

    logger.info(f"Benchmarked {len(comparisons)} metric(s) against {table.source} {table.year}")
    return comparisons


def benchmark_context(
    level: Optional[str] = None,
    domain: Optional[str] = "baseball",
    catalog: Optional[BenchmarkCatalog] = None,
) -> str:
    """Prompt block describing the league table and percentile bands."""
    bench = (catalog or get_catalog()).get(domain)
    if bench is None:
        return ""
    table = bench.resolve_level(level)

    lines = [f"## LEAGUE BENCHMARKS ({table.source} {table.year})",
             "Use these to contextualize the subject's performance:", ""]
    for key, avg in table.averages.items():
        lines.append(f"- League average {key.replace('_', ' ')}: {avg:g}")
    lines += [
        "",
        "PERCENTILE GUIDELINES:",
        "- 90th+ percentile = Elite (top 10%)",
        "- 70-89th percentile = Above Average",
        "- 40-69th percentile = Average",
        "- 20-39th percentile = Below Average",
        "- <20th percentile = Needs significant work",
        "",
        "Percentiles are estimates from league means, not full distributions.",
    ]
    return "\n".join(lines)
