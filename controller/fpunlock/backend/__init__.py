"""System bus clients (fprintd, logind)."""
from .fprintd import FprintdClient, FprintdConnection, FprintdDevice, FprintdError
from .login1 import SleepMonitor

__all__ = [
    "FprintdClient",
    "FprintdConnection",
    "FprintdDevice",
    "FprintdError",
    "SleepMonitor",
]
