'''Exceptions raised by the dispatch engine and its collaborators.'''


class ParloopError(Exception):
    pass


class ExportWarning(UserWarning):
    '''Issued when captured variables and explicit exports disagree.'''

    pass


class DiscoveryError(ParloopError):
    '''Free names of a closure could not be resolved in any enclosing scope.'''

    def __init__(self, names, message=None):
        self.names = tuple(sorted(names))
        if message is None:
            message = 'cannot resolve name(s) {}'.format(', '.join(repr(name) for name in self.names))
        super().__init__(message)


class ItemError(ParloopError):
    '''Base class for failures recorded against a single work item.'''

    def __init__(self, index, cause, message=None):
        self.index = index
        self.cause = cause
        if message is None:
            message = 'item {:d}: {}: {!s}'.format(index, type(cause).__name__, cause)
        super().__init__(message)


class BackendSubmissionError(ItemError):
    '''A work item could not be handed to the backend.'''

    def __init__(self, index, cause):
        super().__init__(index, cause, 'item {:d} could not be submitted: {}: {!s}'.format(index, type(cause).__name__, cause))


class ItemEvaluationFailure(ItemError):
    '''Evaluation of a submitted work item failed on the backend.'''

    def __init__(self, index, cause, remote_traceback=None):
        self.remote_traceback = remote_traceback
        super().__init__(index, cause)


class MultiItemError(ParloopError):
    '''Raised once all items have been collected, when one or more of them failed.
    The first (lowest-index) failure is the reported cause; ``failures`` holds all of them.'''

    def __init__(self, failures, n_items=None):
        self.failures = sorted(failures, key=lambda failure: failure[0])
        if not self.failures:
            raise ValueError('MultiItemError requires at least one failure')
        self.index, self.error = self.failures[0]
        self.n_items = n_items

        if n_items is None:
            summary = '{:d} item(s) failed'.format(len(self.failures))
        else:
            summary = '{:d} of {:d} item(s) failed'.format(len(self.failures), n_items)
        detail = self.detail
        message = 'item {:d} failed: {}: {!s} ({}; failing indices: {})'.format(
            self.index, type(detail).__name__, detail, summary, ', '.join(str(index) for index in self.indices)
        )
        super().__init__(message)

    @property
    def detail(self):
        '''The underlying exception of the first failure.'''
        return getattr(self.error, 'cause', self.error)

    @property
    def indices(self):
        return [index for (index, _error) in self.failures]


class SlotStateError(ParloopError):
    '''A result slot was resolved more than once.'''

    pass
