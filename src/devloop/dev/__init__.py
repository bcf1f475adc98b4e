"""
devloop Development Tools

Session coordinator, local emulator, change scheduler, frontend server and
resource ledger.
"""

from .coordinator import DevCoordinator, DevSession, RunOptions
from .emulator import EmulatorHandle, EmulatorSession, EmulatorSettings, LocalEmulator
from .ledger import ResourceLedger, interrupt_dispatcher
from .scheduler import ChangeScheduler
from .server import FrontendServer, ServeResult
from .watcher import FileWatcher

__all__ = [
    'DevCoordinator',
    'DevSession',
    'RunOptions',
    'EmulatorHandle',
    'EmulatorSession',
    'EmulatorSettings',
    'LocalEmulator',
    'ResourceLedger',
    'interrupt_dispatcher',
    'ChangeScheduler',
    'FrontendServer',
    'ServeResult',
    'FileWatcher',
]
