'''
The ambient resource context: names of modules ("resource bundles") which loop bodies
may rely on without importing them, and which must therefore be made available wherever
a body is evaluated. Resources attached here are merged into every capture set.
'''

import logging
from contextlib import contextmanager

log = logging.getLogger(__name__)


class ResourceContext:
    '''An ordered set of attached resource names.'''

    def __init__(self, resources=None):
        self._resources = []
        for resource in resources or ():
            self.attach(resource)

    def __repr__(self):
        return '<ResourceContext {!r}>'.format(self._resources)

    def __contains__(self, resource):
        return resource in self._resources

    def __iter__(self):
        return iter(list(self._resources))

    def __len__(self):
        return len(self._resources)

    def attach(self, resource):
        if not isinstance(resource, str) or not resource:
            raise TypeError('resource names must be non-empty strings, not {!r}'.format(resource))
        if resource not in self._resources:
            log.debug('attaching resource {!r}'.format(resource))
            self._resources.append(resource)

    def detach(self, resource):
        try:
            self._resources.remove(resource)
        except ValueError:
            raise KeyError('resource {!r} is not attached'.format(resource))
        log.debug('detached resource {!r}'.format(resource))

    def reset(self):
        self._resources = []

    def active(self):
        '''Return the currently attached resources as a tuple, in attachment order.'''
        return tuple(self._resources)

    @contextmanager
    def attached(self, *resources):
        '''Context manager attaching ``resources`` for the duration of the ``with`` block.'''
        added = [resource for resource in resources if resource not in self._resources]
        for resource in added:
            self.attach(resource)
        try:
            yield self
        finally:
            for resource in added:
                if resource in self._resources:
                    self.detach(resource)


default_context = ResourceContext()
attach = default_context.attach
detach = default_context.detach
attached = default_context.attached
active_resources = default_context.active
