import logging
import multiprocessing
import queue
import threading

from .core import WorkManager, WMFuture, run_into_future

log = logging.getLogger(__name__)

ShutdownSentinel = object()


class ThreadsWorkManager(WorkManager):
    '''A work manager using a fixed pool of threads pulling tasks from a shared queue.
    Tasks whose futures are cancelled while still queued are skipped.'''

    @classmethod
    def from_environ(cls, wmenv=None):
        if wmenv is None:
            from .environment import default_env

            wmenv = default_env
        return cls(wmenv.get_val('n_workers', multiprocessing.cpu_count(), int))

    def __init__(self, n_workers=None):
        super().__init__()
        self.n_workers = n_workers or multiprocessing.cpu_count()
        self.workers = []
        self.task_queue = queue.Queue()

    def runtask(self, task_queue):
        while True:
            task = task_queue.get()
            if task is ShutdownSentinel:
                return
            future, fn, args, kwargs = task
            run_into_future(future, fn, args, kwargs)

    def submit(self, fn, args=None, kwargs=None):
        if not self.running:
            raise RuntimeError('{!r} is not running; call startup() or use it as a context manager'.format(self))
        ft = WMFuture()
        self.task_queue.put((ft, fn, args, kwargs))
        return ft

    def startup(self):
        if not self.running:
            self.running = True
            self.workers = [
                threading.Thread(target=self.runtask, args=[self.task_queue], name='worker-{:d}'.format(i))
                for i in range(0, self.n_workers)
            ]
            for thread in self.workers:
                log.debug('starting thread {!r}'.format(thread))
                thread.start()

    def shutdown(self):
        if self.running:
            # Put one sentinel on the queue per worker, then wait for threads to terminate
            for i in range(0, self.n_workers):
                self.task_queue.put(ShutdownSentinel)
            for thread in self.workers:
                thread.join()
            self.running = False
