'''
The dispatch/collation engine.

Work items are submitted to a backend strictly in input order, with at most
``concurrency_cap`` of them outstanding (submitted but not yet collected) at any time.
Completed handles are collected in whatever order the backend finishes them, and each
result or failure is written into the slot for its item's index, so the slots always come
back in input order. A failure to submit or evaluate one item is recorded in its slot and
never stops the others; deciding what to do about failures is left to the aggregator.

The engine's only blocking point is the wait for at least one outstanding handle to
resolve. Handles which are `WMFuture` objects are waited on through a single
`FutureWatcher`; any other handle is polled.
'''

import logging

from .errors import BackendSubmissionError, ItemEvaluationFailure
from .items import Slot
from .work_managers.core import FutureWatcher, WMFuture

log = logging.getLogger(__name__)

default_poll_interval = 0.01


def check_concurrency_cap(concurrency_cap):
    if isinstance(concurrency_cap, bool) or not isinstance(concurrency_cap, int) or concurrency_cap < 1:
        raise ValueError('concurrency cap must be a positive integer, not {!r}'.format(concurrency_cap))
    return concurrency_cap


class CompletionWaiter:
    '''Waits for any of a changing set of handles to resolve.'''

    def __init__(self, poll_interval=default_poll_interval):
        self.poll_interval = poll_interval
        self.watcher = FutureWatcher((), threshold=1)
        self.polled = {}

    def add(self, handle):
        if isinstance(handle, WMFuture):
            # signals the watcher at once if already resolved
            handle._add_watcher(self.watcher)
        else:
            self.polled[id(handle)] = handle

    def _ready(self):
        completed = self.watcher.reset() if self.watcher.event.is_set() else []
        for handle_id, handle in list(self.polled.items()):
            if handle.poll():
                del self.polled[handle_id]
                completed.append(handle)
        return completed

    def wait(self):
        '''Block until at least one handle has resolved, then return all handles which have resolved
        since the last call.'''
        while True:
            completed = self._ready()
            if completed:
                return completed
            if self.polled:
                self.watcher.wait(self.poll_interval)
            else:
                self.watcher.wait()


def _remote_traceback(handle):
    get_traceback = getattr(handle, 'get_traceback', None)
    if get_traceback is None:
        return None
    tb = get_traceback()
    return tb if isinstance(tb, str) else None


def collect(slot, handle):
    '''Write the outcome of a resolved ``handle`` into ``slot``.'''
    try:
        value = handle.get_result()
    except Exception as e:
        log.debug('item {:d} failed: {!r}'.format(slot.index, e))
        slot.set_failure(ItemEvaluationFailure(slot.index, e, _remote_traceback(handle)))
    else:
        slot.set_value(value)


def dispatch(work_items, closure, capture_set, backend, concurrency_cap, poll_interval=default_poll_interval):
    '''Evaluate ``closure`` for every item of ``work_items`` on ``backend``, keeping no more than
    ``concurrency_cap`` items outstanding at once, and return the list of resolved `Slot` objects in
    item order.

    ``backend`` must provide ``submit(closure, capture_set, item_bindings)``, returning a handle with
    ``poll()`` and ``get_result()`` (and optionally ``cancel()``). If the caller is interrupted while
    waiting, outstanding handles are cancelled where possible before the interruption propagates.'''

    concurrency_cap = check_concurrency_cap(concurrency_cap)
    work_items = list(work_items)
    for position, item in enumerate(work_items):
        if item.index != position:
            raise ValueError('work item {!r} is at position {:d}'.format(item, position))

    slots = [Slot(item.index) for item in work_items]
    outstanding = {}
    waiter = CompletionWaiter(poll_interval)
    pending_items = iter(work_items)
    exhausted = False
    max_outstanding = 0

    log.debug('dispatching {:d} items of {!r} to {!r} (cap {:d})'.format(len(work_items), closure, backend, concurrency_cap))
    try:
        while True:
            # Keep the backend saturated
            while not exhausted and len(outstanding) < concurrency_cap:
                item = next(pending_items, None)
                if item is None:
                    exhausted = True
                    break
                try:
                    handle = backend.submit(closure, capture_set, item.bindings)
                except Exception as e:
                    log.debug('submission of item {:d} failed: {!r}'.format(item.index, e))
                    slots[item.index].set_failure(BackendSubmissionError(item.index, e))
                    continue
                outstanding[id(handle)] = (handle, item.index)
                max_outstanding = max(max_outstanding, len(outstanding))
                waiter.add(handle)

            if not outstanding:
                break

            for handle in waiter.wait():
                try:
                    handle, index = outstanding.pop(id(handle))
                except KeyError:
                    continue
                collect(slots[index], handle)
    except BaseException:
        if outstanding:
            log.warning('cancelling {:d} outstanding item(s)'.format(len(outstanding)))
        for handle, index in outstanding.values():
            cancel = getattr(handle, 'cancel', None)
            if cancel is not None:
                try:
                    cancel()
                except Exception:
                    log.debug('cannot cancel item {:d}'.format(index), exc_info=True)
        raise

    n_failed = sum(1 for slot in slots if slot.failed)
    log.info(
        'collected {:d} item(s) from {!r}: {:d} failed, at most {:d} outstanding'.format(
            len(slots), backend, n_failed, max_outstanding
        )
    )
    return slots
