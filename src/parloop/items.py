from .errors import SlotStateError


class WorkItem:
    '''One iteration of a parallel loop: its position in the input sequence and the values
    bound to the loop variables for it.'''

    __slots__ = ('index', 'bindings')

    def __init__(self, index, bindings=None):
        self.index = index
        self.bindings = dict(bindings or {})

    def __repr__(self):
        return '<WorkItem {:d} {!r}>'.format(self.index, self.bindings)

    def __eq__(self, other):
        if not isinstance(other, WorkItem):
            return NotImplemented
        return self.index == other.index and self.bindings == other.bindings

    __hash__ = None


def make_work_items(iterables=None, **kwargs):
    '''Build the list of `WorkItem` objects for a loop over the given iterables, which may be given as
    a mapping of loop-variable name to iterable, as keyword arguments, or both. The iterables are
    advanced in lockstep; iteration stops when the shortest is exhausted.

    A sequence of mappings (one mapping of bindings per item) is also accepted in place of
    ``iterables``.'''
    if iterables is not None and not hasattr(iterables, 'keys'):
        if kwargs:
            raise TypeError('cannot combine a sequence of bindings with keyword iterables')
        return [WorkItem(index, bindings) for (index, bindings) in enumerate(iterables)]

    named = dict(iterables or {})
    for name in kwargs:
        if name in named:
            raise TypeError('loop variable {!r} given more than once'.format(name))
    named.update(kwargs)
    if not named:
        return []

    names = list(named)
    return [WorkItem(index, dict(zip(names, values))) for (index, values) in enumerate(zip(*named.values()))]


class Slot:
    '''The result container for one work item. A slot starts out pending and is resolved, exactly
    once, to either a value or a failure.'''

    PENDING = 'pending'
    VALUE = 'value'
    FAILED = 'failed'

    __slots__ = ('index', 'state', '_payload')

    def __init__(self, index):
        self.index = index
        self.state = self.PENDING
        self._payload = None

    def __repr__(self):
        return '<Slot {:d} {}>'.format(self.index, self.state)

    @property
    def pending(self):
        return self.state == self.PENDING

    @property
    def failed(self):
        return self.state == self.FAILED

    def _resolve(self, state, payload):
        if self.state != self.PENDING:
            raise SlotStateError('slot {:d} already resolved ({})'.format(self.index, self.state))
        self.state = state
        self._payload = payload

    def set_value(self, value):
        self._resolve(self.VALUE, value)

    def set_failure(self, error):
        self._resolve(self.FAILED, error)

    @property
    def value(self):
        if self.state != self.VALUE:
            raise SlotStateError('slot {:d} holds no value ({})'.format(self.index, self.state))
        return self._payload

    @property
    def error(self):
        if self.state != self.FAILED:
            raise SlotStateError('slot {:d} holds no failure ({})'.format(self.index, self.state))
        return self._payload


class ErrorMarker:
    '''Stands in for the value of a failed item when errors are collected rather than raised.'''

    def __init__(self, index, error):
        self.index = index
        self.error = error

    def __repr__(self):
        return '<ErrorMarker {:d}: {!s}>'.format(self.index, self.error)

    def __bool__(self):
        return False

    @property
    def cause(self):
        '''The underlying exception.'''
        return getattr(self.error, 'cause', self.error)
