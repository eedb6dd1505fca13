"""codedrift server - webhook intake, sync endpoints and periodic sweeps."""

from codedrift.daemon.app import create_app
from codedrift.daemon.context import AppContext
from codedrift.daemon.lifecycle import run_server
from codedrift.daemon.scheduler import SyncScheduler

__all__ = [
    "AppContext",
    "SyncScheduler",
    "create_app",
    "run_server",
]
