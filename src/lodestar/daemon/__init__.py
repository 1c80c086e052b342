"""Background processing - periodic batch sweeps."""

from lodestar.daemon.sweeper import SweepDaemon

__all__ = ["SweepDaemon"]
