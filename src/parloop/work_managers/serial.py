import logging

from .core import WorkManager, WMFuture, run_into_future


log = logging.getLogger(__name__)


class SerialWorkManager(WorkManager):
    '''A work manager which evaluates each task as it is submitted, in the submitting thread.
    Every future it returns is already resolved, so the dispatch engine never blocks on it.'''

    @classmethod
    def from_environ(cls, wmenv=None):
        return cls()

    def __init__(self):
        log.debug('initializing serial work manager')
        super().__init__()
        self.n_workers = 1

    def submit(self, fn, args=None, kwargs=None):
        ft = WMFuture()
        run_into_future(ft, fn, args, kwargs)
        return ft
