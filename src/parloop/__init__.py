'''parloop: parallel loops over pluggable work managers.

Each iteration of a loop is dispatched to a work manager (serial, threads, processes, or any
object implementing the backend interface) together with the variables and resources its body
needs; results are collected in input order, exactly as a sequential loop would produce them.
'''

__version__ = '1.0.0'

from .errors import (  # noqa
    ParloopError,
    DiscoveryError,
    BackendSubmissionError,
    ItemEvaluationFailure,
    MultiItemError,
    ExportWarning,
)
from .closures import SourceClosure, FunctionClosure, as_closure  # noqa
from .discovery import ScopeChain, CaptureSet, discover  # noqa
from .items import WorkItem, Slot, ErrorMarker, make_work_items  # noqa
from .engine import dispatch  # noqa
from .aggregate import aggregate, reduce_results  # noqa
from .plan import Plan  # noqa
from .foreach import run, foreach  # noqa
from . import resources, work_managers  # noqa
from . import _rc

rc = _rc.ParloopRC()

__all__ = [
    'ParloopError',
    'DiscoveryError',
    'BackendSubmissionError',
    'ItemEvaluationFailure',
    'MultiItemError',
    'ExportWarning',
    'SourceClosure',
    'FunctionClosure',
    'as_closure',
    'ScopeChain',
    'CaptureSet',
    'discover',
    'WorkItem',
    'Slot',
    'ErrorMarker',
    'make_work_items',
    'dispatch',
    'aggregate',
    'reduce_results',
    'Plan',
    'run',
    'foreach',
    'resources',
    'work_managers',
    'rc',
]
