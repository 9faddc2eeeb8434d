"""poolsnap - liquidity-pool snapshots and period rollups."""

__version__ = "0.1.0"
