import logging
import multiprocessing
import os
import pickle
import queue
import random
import signal
import sys
import threading
import traceback

from .core import WorkManager, WMFuture

log = logging.getLogger(__name__)

# Tasks are tuples (message, task_id, payload) where payload is a pickled (fn, args, kwargs) triple.
# Results are tuples (rtype, task_id, payload) where rtype is 'result' or 'exception' and payload is the pickled
# return value or (exception, traceback text) pair, respectively.

task_shutdown_sentinel = ('shutdown', None, None)
result_shutdown_sentinel = ('shutdown', None, None)

# Workers inherit the master's loaded modules and attached resources, so always fork
mp_context = multiprocessing.get_context('fork')


def _pack_result(task_id, rtype, payload):
    try:
        return (rtype, task_id, pickle.dumps(payload, pickle.HIGHEST_PROTOCOL))
    except Exception as e:
        # The return value (or exception) cannot be sent back; report that instead
        tb = traceback.format_exc()
        error = RuntimeError('cannot return {} from worker: {!s}'.format(rtype, e))
        return ('exception', task_id, pickle.dumps((error, tb), pickle.HIGHEST_PROTOCOL))


def task_loop(task_queue, result_queue):
    # Close standard input, so we don't get SIGINT from ^C
    try:
        sys.stdin.close()
    except Exception as e:
        log.info("can't close stdin: {}".format(e))

    # (re)initialize random number generator in this process
    random.seed()

    while True:
        message, task_id, payload = task_queue.get()[:3]

        if message == 'shutdown':
            break

        try:
            fn, args, kwargs = pickle.loads(payload)
            result = fn(*args, **kwargs)
        except BaseException as e:
            result_tuple = _pack_result(task_id, 'exception', (e, traceback.format_exc()))
        else:
            result_tuple = _pack_result(task_id, 'result', result)
        result_queue.put(result_tuple)

    log.debug('exiting task_loop')


class ProcessWorkManager(WorkManager):
    '''A work manager using the ``multiprocessing`` module. Tasks are pickled when submitted, so
    a task which cannot be sent to a worker fails in ``submit()`` rather than in the background.'''

    @classmethod
    def from_environ(cls, wmenv=None):
        if wmenv is None:
            from .environment import default_env

            wmenv = default_env
        return cls(wmenv.get_val('n_workers', multiprocessing.cpu_count(), int))

    def __init__(self, n_workers=None, shutdown_timeout=1):
        super().__init__()
        self.n_workers = n_workers or multiprocessing.cpu_count()
        self.workers = None
        self.task_queue = mp_context.Queue()
        self.result_queue = mp_context.Queue()
        self.receive_thread = None
        self.pending = None

        self.shutdown_received = False
        self.shutdown_timeout = shutdown_timeout or 1

    def results_loop(self):
        while not self.shutdown_received:
            message, task_id, payload = self.result_queue.get()[:3]

            if message == 'shutdown':
                break

            future = self.pending.pop(task_id, None)
            if future is None:
                log.debug('discarding {} for unknown task {!s}'.format(message, task_id))
            elif message == 'exception':
                future._set_exception(*pickle.loads(payload))
            elif message == 'result':
                future._set_result(pickle.loads(payload))
            else:
                raise AssertionError('unknown message {!r}'.format((message, task_id, payload)))

        log.debug('exiting results_loop')

    def submit(self, fn, args=None, kwargs=None):
        if not self.running:
            raise RuntimeError('{!r} is not running; call startup() or use it as a context manager'.format(self))
        payload = pickle.dumps((fn, args or (), kwargs or {}), pickle.HIGHEST_PROTOCOL)
        ft = WMFuture()
        log.debug('dispatching {!r}'.format(fn))
        self.pending[ft.task_id] = ft
        self.task_queue.put(('task', ft.task_id, payload))
        return ft

    def startup(self):
        from .environment import WMEnvironment

        if not self.running:
            log.debug('starting up work manager {!r}'.format(self))
            self.running = True
            self.workers = [
                mp_context.Process(
                    target=task_loop, args=(self.task_queue, self.result_queue), name='worker-{:d}-{:x}'.format(i, id(self))
                )
                for i in range(self.n_workers)
            ]

            pi_name = '{}_PROCESS_INDEX'.format(WMEnvironment.env_prefix)
            for iworker, worker in enumerate(self.workers):
                os.environ[pi_name] = str(iworker)
                worker.start()
            try:
                del os.environ[pi_name]
            except KeyError:
                pass

            self.pending = dict()

            self.receive_thread = threading.Thread(target=self.results_loop, name='receiver')
            self.receive_thread.daemon = True
            self.receive_thread.start()

    def _empty_queues(self):
        while not self.task_queue.empty():
            try:
                self.task_queue.get(block=False)
            except queue.Empty:
                break

        while not self.result_queue.empty():
            try:
                self.result_queue.get(block=False)
            except queue.Empty:
                break

    def shutdown(self):
        if self.running:
            log.debug('shutting down {!r}'.format(self))
            self._empty_queues()

            # Send shutdown signal
            for _i in range(self.n_workers):
                self.task_queue.put(task_shutdown_sentinel, block=False)

            for worker in self.workers:
                worker.join(self.shutdown_timeout)
                if worker.is_alive():
                    log.debug('sending SIGINT to worker process {:d}'.format(worker.pid))
                    os.kill(worker.pid, signal.SIGINT)
                    worker.join(self.shutdown_timeout)
                    if worker.is_alive():
                        log.warning('sending SIGKILL to worker process {:d}'.format(worker.pid))
                        os.kill(worker.pid, signal.SIGKILL)
                        worker.join()

                    log.debug('worker process {:d} terminated with code {!r}'.format(worker.pid, worker.exitcode))
                else:
                    log.debug('worker process {:d} terminated gracefully with code {!r}'.format(worker.pid, worker.exitcode))

            self._empty_queues()
            self.result_queue.put(result_shutdown_sentinel)

            # Anything still pending will never complete
            for future in list(self.pending.values()):
                future._set_exception(RuntimeError('work manager shut down before task completed'))
            self.pending.clear()
            self.running = False
