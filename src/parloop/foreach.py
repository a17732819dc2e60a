'''
Running parallel loops.

`run` is the full invocation: it discovers what the loop body needs, dispatches every work
item to a backend, collects the results in input order, deals with failures and folds the
results into a final value. `foreach` is a convenience wrapper in the familiar form::

    from parloop import foreach

    scale = 10
    squares = foreach(x=range(5)).do('x * x * scale')

Options not given explicitly are taken from a `Plan`; by default, the process-wide plan held
by ``parloop.rc``.
'''

import logging

from .aggregate import NotProvided, aggregate, check_on_error, reduce_results
from .closures import as_closure
from .discovery import ScopeChain, discover
from .engine import dispatch
from .items import WorkItem, make_work_items
from .work_managers.core import as_backend

log = logging.getLogger(__name__)


def _default_plan():
    from . import rc

    return rc.get_plan()


def _as_work_items(work_items):
    work_items = list(work_items)
    if all(isinstance(item, WorkItem) for item in work_items):
        return work_items
    return make_work_items(work_items)


def run(
    work_items,
    closure,
    exports=(),
    resources=(),
    export_mode=None,
    concurrency_cap=None,
    combine=None,
    *,
    scope=None,
    on_error=None,
    noexport=(),
    init=NotProvided,
    final=None,
    multicombine=False,
    strict=None,
    plan=None,
    backend=None,
):
    '''Evaluate ``closure`` once per item of ``work_items`` and return the combined result.

    ``work_items`` is a sequence of `WorkItem` objects, or of mappings of loop-variable bindings.
    ``closure`` is Python source or a function (see `parloop.closures`). ``scope`` is the enclosing
    scope to capture variables from; by default, the scope of the caller for source closures and
    the function's own scope for function closures.

    Raises `DiscoveryError` (before anything is submitted) if strict discovery fails, and
    `MultiItemError` if any item failed and failures are to be raised.'''

    if plan is None:
        plan = _default_plan()

    closure = as_closure(closure)
    if scope is None and closure.lexical_frames() is None:
        scope = ScopeChain.from_caller(1)

    export_mode = export_mode or plan.export_mode
    on_error = check_on_error(on_error or plan.on_error)
    strict = plan.strict if strict is None else strict
    backend = as_backend(backend) if backend is not None else plan.get_backend()
    concurrency_cap = plan.resolve_concurrency_cap(backend, concurrency_cap)

    work_items = _as_work_items(work_items)
    item_names = set()
    for item in work_items:
        item_names.update(item.bindings)

    capture_set = discover(
        closure,
        scope,
        exports=exports,
        resources=resources,
        mode=export_mode,
        noexport=noexport,
        strict=strict,
        item_names=item_names,
    )

    slots = dispatch(work_items, closure, capture_set, backend, concurrency_cap, poll_interval=plan.poll_interval)
    results = aggregate(slots, on_error)
    return reduce_results(results, combine, init=init, final=final, multicombine=multicombine)


class Loop:
    '''A parallel loop over a set of iterables, waiting for a body. Created by `foreach`.'''

    def __init__(self, work_items, options):
        self.work_items = work_items
        self.options = options

    def __repr__(self):
        return '<Loop over {:d} item(s)>'.format(len(self.work_items))

    def __len__(self):
        return len(self.work_items)

    def do(self, body, scope=None):
        '''Run ``body`` for every item of this loop and return the combined result.'''
        closure = as_closure(body)
        if scope is None and closure.lexical_frames() is None:
            scope = ScopeChain.from_caller(1)
        return run(self.work_items, closure, scope=scope, **self.options)


def foreach(
    iterables=None,
    *,
    exports=(),
    noexport=(),
    resources=(),
    combine=None,
    init=NotProvided,
    final=None,
    multicombine=False,
    export_mode=None,
    on_error=None,
    concurrency_cap=None,
    strict=None,
    plan=None,
    backend=None,
    **kwiterables
):
    '''Set up a parallel loop over the given iterables (a mapping of loop-variable name to iterable,
    keyword arguments, or both), which are advanced in lockstep until the shortest is exhausted.
    Call ``.do(body)`` on the result to run it.'''
    options = dict(
        exports=exports,
        noexport=noexport,
        resources=resources,
        combine=combine,
        init=init,
        final=final,
        multicombine=multicombine,
        export_mode=export_mode,
        on_error=on_error,
        concurrency_cap=concurrency_cap,
        strict=strict,
        plan=plan,
        backend=backend,
    )
    return Loop(make_work_items(iterables, **kwiterables), options)
