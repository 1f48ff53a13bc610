"""
CDC Wave

Plans ingestion waves from SQL Server to Snowflake: groups tables into
Debezium source connectors, renders source/sink/job manifests into a
deployment tree and publishes them on a Git branch.
"""

__version__ = "0.1.0"

from cdc_wave.core.wave_orchestrator import WaveOptions, WaveResult, run_wave

__all__ = [
    "WaveOptions",
    "WaveResult",
    "run_wave",
]
