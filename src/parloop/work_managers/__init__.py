'''Work managers: interchangeable backends which evaluate tasks asynchronously and hand back
`WMFuture` objects. Much of this, both in concept and execution, was inspired by the
``concurrent.futures`` package, with some simplifications and adaptations.
'''

from .core import WorkManager, WMFuture, FutureWatcher, FutureCancelled, as_backend  # noqa


# Core work managers, which should run most everywhere that Python does
from . import serial, threads, processes  # noqa
from .serial import SerialWorkManager
from .threads import ThreadsWorkManager
from .processes import ProcessWorkManager

_available_work_managers = {
    'serial': SerialWorkManager,
    'threads': ThreadsWorkManager,
    'processes': ProcessWorkManager,
}

from . import environment  # noqa
from .environment import make_work_manager  # noqa


__all__ = [
    'serial',
    'threads',
    'processes',
    'WorkManager',
    'WMFuture',
    'FutureWatcher',
    'FutureCancelled',
    'SerialWorkManager',
    'ThreadsWorkManager',
    'ProcessWorkManager',
    'as_backend',
    'environment',
    'make_work_manager',
]
