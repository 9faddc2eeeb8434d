"""Run pipelines for poolsnap."""

from .rollup_pipeline import (
    MODES,
    RollupPipeline,
    RollupPipelineConfig,
    RollupPipelineResult,
    build_snapshot_rows,
    create_rollup_pipeline,
)

__all__ = [
    "MODES",
    "RollupPipeline",
    "RollupPipelineConfig",
    "RollupPipelineResult",
    "build_snapshot_rows",
    "create_rollup_pipeline",
]
