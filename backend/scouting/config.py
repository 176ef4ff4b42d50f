"""
Runtime settings for the pipeline, read once from the environment.

load_dotenv() runs at import so a local .env is honoured by both the API
process and standalone workers. LLM-specific settings live in
llm_service.LLMConfig.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

_BACKEND_DIR = Path(__file__).resolve().parent.parent


class Settings:
    """Pipeline configuration."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./scouting.db")
        self.upload_dir = Path(os.getenv("UPLOAD_DIR", str(_BACKEND_DIR / "uploads")))
        self.max_upload_bytes = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

        # Benchmarks
        self.benchmark_level = os.getenv("BENCHMARK_LEVEL", "collegiate").lower()
        # Approximation: population std-dev assumed to be this share of the mean
        # until real variance data exists for the league tables.
        self.benchmark_stddev_ratio = float(os.getenv("BENCHMARK_STDDEV_RATIO", "0.15"))

        # Pipeline sizing
        self.metric_batch_size = int(os.getenv("METRIC_BATCH_SIZE", "1000"))
        self.interpretation_sample_rows = int(os.getenv("INTERPRETATION_SAMPLE_ROWS", "20"))
        self.insight_sample_rows = int(os.getenv("INSIGHT_SAMPLE_ROWS", "20"))
        self.worker_pool_size = int(os.getenv("WORKER_POOL_SIZE", "2"))


_settings = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
