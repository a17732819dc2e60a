'''Turning resolved slots into a final value: deciding what to do about failed items, then
folding the ordered results.'''

import functools
import logging

from .errors import MultiItemError
from .items import ErrorMarker

log = logging.getLogger(__name__)

ON_ERROR_RAISE = 'raise-first'
ON_ERROR_CONTINUE = 'continue-with-markers'

on_error_modes = (ON_ERROR_RAISE, ON_ERROR_CONTINUE)
default_on_error = ON_ERROR_RAISE

NotProvided = object()


def check_on_error(on_error):
    if on_error not in on_error_modes:
        raise ValueError('invalid error handling mode {!r} (valid modes: {!r})'.format(on_error, on_error_modes))
    return on_error


def aggregate(slots, on_error=default_on_error):
    '''Return the values of ``slots`` in order. If any slot failed, either raise a `MultiItemError`
    naming the first (lowest-index) failure and listing all of them (``on_error='raise-first'``), or put
    an `ErrorMarker` in place of each failed value (``on_error='continue-with-markers'``).'''
    check_on_error(on_error)
    slots = sorted(slots, key=lambda slot: slot.index)

    failures = [(slot.index, slot.error) for slot in slots if slot.failed]
    if failures:
        log.debug('{:d} of {:d} item(s) failed'.format(len(failures), len(slots)))
        if on_error == ON_ERROR_RAISE:
            first_error = failures[0][1]
            raise MultiItemError(failures, len(slots)) from getattr(first_error, 'cause', first_error)

    return [ErrorMarker(slot.index, slot.error) if slot.failed else slot.value for slot in slots]


def reduce_results(results, combine=None, init=NotProvided, final=None, multicombine=False):
    '''Fold the ordered ``results`` into a final value.

    With no ``combine`` function, the results are collected into a new list in the order given. Otherwise
    ``combine`` is applied left to right as a binary function, starting from ``init`` if given and from the
    first result if not (an empty sequence with no ``init`` folds to None). With ``multicombine``,
    ``combine`` is instead called once with all the results (preceded by ``init``, if given) as
    positional arguments. ``final``, if given, is applied to the folded value.'''
    results = list(results)

    if combine is None:
        if init is not NotProvided:
            raise ValueError('an initial value requires a combine function')
        value = results
    elif multicombine:
        args = results if init is NotProvided else [init] + results
        value = combine(*args)
    elif init is not NotProvided:
        value = functools.reduce(combine, results, init)
    elif results:
        value = functools.reduce(combine, results)
    else:
        value = None

    if final is not None:
        value = final(value)
    return value
