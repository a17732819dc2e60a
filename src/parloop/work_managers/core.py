import logging
import signal
import sys
import threading
import uuid

log = logging.getLogger(__name__)


class FutureCancelled(Exception):
    '''Raised when retrieving the result of a future which was cancelled before it ran.'''

    pass


class WorkManager:
    '''Base class for all work managers. At a minimum, work managers must provide a
    ``submit()`` function and a ``n_workers`` attribute (which may be a property),
    though most will also override ``startup()`` and ``shutdown()``.

    Work managers also serve directly as backends for the dispatch engine, through
    ``submit_item()`` and ``max_concurrency()``.'''

    @classmethod
    def from_environ(cls, wmenv=None):
        raise NotImplementedError

    @classmethod
    def add_wm_args(cls, parser, wmenv=None):
        return

    def __repr__(self):
        return '<{classname} at 0x{id:x}>'.format(classname=self.__class__.__name__, id=id(self))

    def __init__(self):
        self._sigint_handler_installed = False
        self.prior_sigint_handler = None
        self.running = False

    def __enter__(self):
        self.startup()
        return self

    def __exit__(self, exc_type, exc_val, exc_traceback):
        self.shutdown()
        return False

    def sigint_handler(self, signum, frame):
        self.shutdown()
        if self.prior_sigint_handler in (signal.SIG_IGN, None):
            pass
        elif self.prior_sigint_handler == signal.SIG_DFL:
            raise KeyboardInterrupt
        else:
            self.prior_sigint_handler(signum, frame)

    def install_sigint_handler(self):
        if not self._sigint_handler_installed:
            self._sigint_handler_installed = True
            self.prior_sigint_handler = signal.signal(signal.SIGINT, self.sigint_handler)

    def startup(self):
        '''Perform any necessary startup work, such as spawning workers.'''
        self.running = True

    def shutdown(self):
        '''Cleanly shut down any active workers.'''
        self.running = False

    def submit(self, fn, args=None, kwargs=None):
        '''Submit a task to the work manager, returning a `WMFuture` object representing the pending
        result. ``fn(*args,**kwargs)`` will be executed by a worker, and the return value assigned as the
        result of the returned future.  Work managers which run tasks in other processes require ``fn``
        and all arguments to be picklable.'''
        raise NotImplementedError

    def submit_item(self, closure, capture_set, item_bindings):
        '''Submit the evaluation of ``closure`` for one work item, returning a `WMFuture`. The
        closure is evaluated by a worker in a namespace built from ``capture_set`` and
        ``item_bindings`` (see :func:`parloop.closures.evaluate_item`).'''
        from parloop.closures import evaluate_item

        return self.submit(evaluate_item, args=(closure, capture_set, item_bindings))

    def max_concurrency(self):
        '''The number of items this work manager can usefully have in flight at once.'''
        return max(1, int(self.n_workers or 1))


class FutureWatcher:
    '''A device to wait on multiple results and/or exceptions with only one lock.'''

    def __init__(self, futures, threshold=1):
        self.event = threading.Event()
        self.lock = threading.RLock()
        self.threshold = threshold
        self.completed = []

        for future in futures:
            future._add_watcher(self)

    def signal(self, future):
        '''Signal this watcher that the given future has results available. If this
        brings the number of available futures above signal_threshold, this watcher's
        event object will be signalled as well.'''
        with self.lock:
            self.completed.append(future)
            if len(self.completed) >= self.threshold:
                self.event.set()

    def wait(self, timeout=None):
        '''Wait on one or more futures.'''
        return self.event.wait(timeout)

    def reset(self):
        '''Reset this watcher's list of completed futures, returning the list of completed futures
        prior to resetting it.'''
        with self.lock:
            self.event.clear()
            completed = self.completed
            self.completed = []
            return completed


class WMFuture:
    '''A "future", representing work which has been dispatched for completion asynchronously.
    A future is resolved exactly once; later attempts to set a result or exception are ignored.'''

    def __init__(self, task_id=None):
        self.task_id = task_id or uuid.uuid4()

        self._condition = threading.Condition()
        self._done = False
        self._cancelled = False
        self._result = None
        self._exception = None
        self._traceback = None

        # a set of watchers waiting on results from this future
        # this set will be cleared after the result is updated and watchers are notified
        self._watchers = set()

    def __repr__(self):
        return '<WMFuture 0x{id:x}: {self.task_id!s}>'.format(id=id(self), self=self)

    def __hash__(self):
        return hash(self.task_id)

    def _notify_watchers(self):
        '''Notify all watchers that this future has been updated, then deletes the list of update watchers.'''
        with self._condition:
            assert self._done
            for watcher in self._watchers:
                watcher.signal(self)
            self._watchers.clear()

    def _add_watcher(self, watcher):
        '''Add the given update watcher to the internal list of watchers. If a result is available,
        signals the watcher immediately without updating the list of watchers.'''
        with self._condition:
            if self._done:
                watcher.signal(self)
                return
            else:
                self._watchers.add(watcher)

    def _set_result(self, result):
        '''Set the result of this future to the given value and notify watchers.'''
        with self._condition:
            if self._done:
                log.debug('ignoring late result for {!r}'.format(self))
                return
            self._result = result
            self._done = True
            self._condition.notify_all()
            self._notify_watchers()

    def _set_exception(self, exception, traceback=None):
        '''Set the exception of this future to the given value and notify watchers.'''

        with self._condition:
            if self._done:
                log.debug('ignoring late exception for {!r}'.format(self))
                return
            self._exception = exception
            self._traceback = traceback
            self._done = True
            self._condition.notify_all()
            self._notify_watchers()

    def _raise_exception(self):
        if isinstance(self._traceback, str):
            if self._traceback:
                log.debug('uncaught exception in remote function\n{}'.format(self._traceback))
            raise self._exception
        else:
            raise self._exception.with_traceback(self._traceback)

    def get_result(self, discard=True):
        '''Get the result associated with this future, blocking until it is available.
        If ``discard`` is true, then removes the reference to the result contained
        in this instance, so that a collection of futures need not turn into a cache of
        all associated results.'''
        with self._condition:
            while not self._done:
                self._condition.wait()
            if self._exception is not None:
                self._raise_exception()

            result = self._result
            if discard:
                self._result = None
            return result

    @property
    def result(self):
        return self.get_result(discard=False)

    def wait(self):
        '''Wait until this future has a result or exception available.'''
        with self._condition:
            while not self._done:
                self._condition.wait()

    def poll(self):
        '''Return True if this future has a result or exception available, without blocking.'''
        return self.done

    def cancel(self):
        '''Cancel this future if it has not yet been resolved. Returns True if the future was
        cancelled. Whether the underlying task still runs depends on the work manager.'''
        with self._condition:
            if self._done:
                return False
            self._cancelled = True
            self._set_exception(FutureCancelled('task {!s} was cancelled'.format(self.task_id)))
            return True

    @property
    def cancelled(self):
        with self._condition:
            return self._cancelled

    def get_exception(self):
        '''Get the exception associated with this future, blocking until it is available.'''
        with self._condition:
            while not self._done:
                self._condition.wait()
            return self._exception

    exception = property(get_exception, None, None, get_exception.__doc__)

    def get_traceback(self):
        '''Get the traceback object (or remote traceback text) associated with this future, if any.'''
        with self._condition:
            while not self._done:
                self._condition.wait()
            return self._traceback

    traceback = property(get_traceback, None, None, get_traceback.__doc__)

    def is_done(self):
        'Indicates whether this future is done executing (may block if this future is being updated).'
        with self._condition:
            return self._done

    done = property(is_done, None, None, is_done.__doc__)


# end class WMFuture


def run_into_future(future, fn, args=None, kwargs=None):
    '''Run ``fn(*args, **kwargs)`` in the current thread, storing its return value or exception
    in ``future``. Futures cancelled before this is called are left untouched and ``fn`` is not run.'''
    if future.cancelled:
        log.debug('skipping cancelled task {!s}'.format(future.task_id))
        return
    try:
        result = fn(*(args if args is not None else ()), **(kwargs if kwargs is not None else {}))
    except Exception as e:
        future._set_exception(e, sys.exc_info()[2])
    else:
        future._set_result(result)


class _WorkManagerBackend:
    '''Item-level view of a `WorkManager`.'''

    def __init__(self, work_manager):
        self.work_manager = work_manager

    def __repr__(self):
        return '<backend for {!r}>'.format(self.work_manager)

    def submit(self, closure, capture_set, item_bindings):
        return self.work_manager.submit_item(closure, capture_set, item_bindings)

    def max_concurrency(self):
        return self.work_manager.max_concurrency()


def as_backend(obj):
    '''Return an object satisfying the item-level backend contract
    (``submit(closure, capture_set, item_bindings)`` and ``max_concurrency()``) for ``obj``.
    Work managers are wrapped; objects already satisfying the contract are returned unchanged.'''
    if isinstance(obj, WorkManager):
        return _WorkManagerBackend(obj)
    elif hasattr(obj, 'max_concurrency') and callable(getattr(obj, 'submit', None)):
        return obj
    else:
        raise TypeError('{!r} is not a work manager or backend'.format(obj))
