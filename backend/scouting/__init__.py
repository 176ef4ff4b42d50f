"""Team-mode performance data pipeline."""
