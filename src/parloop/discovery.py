'''
Dependency discovery: working out which variables and resources a loop body needs to carry
with it in order to be evaluated away from the scope it was written in.

The enclosing scope is given explicitly as a `ScopeChain`, an ordered list of name-to-value
frames, innermost first. `ScopeChain.from_caller()` builds one from the calling frame (its
locals, which include any closure variables, followed by its module globals); function
bodies carry their own lexical scope (closure cells, then the globals of their module).
'''

import logging
import sys
import types
import warnings

from .closures import ModuleRef, as_closure, is_builtin
from .errors import DiscoveryError, ExportWarning
from . import resources as _resources

log = logging.getLogger(__name__)

EXPORT_MODE_EXPLICIT = 'explicit'
EXPORT_MODE_LOCAL = 'explicit-and-local'
EXPORT_MODE_AUTOMATIC = 'explicit-and-automatic'
EXPORT_MODE_AUTOMATIC_WARN = 'explicit-and-automatic-with-warning'

export_modes = (EXPORT_MODE_EXPLICIT, EXPORT_MODE_LOCAL, EXPORT_MODE_AUTOMATIC, EXPORT_MODE_AUTOMATIC_WARN)
default_export_mode = EXPORT_MODE_AUTOMATIC


class ScopeChain:
    '''An ordered snapshot of enclosing scopes, innermost first. Each frame is a ``(label, mapping)``
    pair; frames may also be given as bare mappings, in which case they are labelled by position.'''

    def __init__(self, frames=()):
        self.frames = []
        for iframe, frame in enumerate(frames):
            if isinstance(frame, tuple):
                label, mapping = frame
            else:
                label, mapping = 'frame {:d}'.format(iframe), frame
            self.frames.append((label, dict(mapping)))

    def __repr__(self):
        return '<ScopeChain [{}]>'.format(', '.join(label for (label, _mapping) in self.frames))

    def __len__(self):
        return len(self.frames)

    def __iter__(self):
        return iter(self.frames)

    @classmethod
    def coerce(cls, scope):
        if scope is None:
            return cls()
        elif isinstance(scope, ScopeChain):
            return scope
        elif isinstance(scope, dict):
            return cls([scope])
        else:
            return cls(scope)

    @classmethod
    def from_caller(cls, depth=1):
        '''Snapshot the scope of the frame ``depth`` levels above the caller of this method
        (``depth=0`` is the caller itself).'''
        frame = sys._getframe(depth + 1)
        try:
            module_name = frame.f_globals.get('__name__', '?')
            frames = []
            if frame.f_code.co_name != '<module>':
                frames.append(('locals of {}'.format(frame.f_code.co_name), dict(frame.f_locals)))
            frames.append(('globals of {}'.format(module_name), frame.f_globals))
            return cls(frames)
        finally:
            del frame

    @classmethod
    def from_closure(cls, closure):
        return cls(closure.lexical_frames() or ())

    def innermost(self):
        '''Return a chain consisting only of the innermost frame of this one.'''
        return ScopeChain(self.frames[:1])

    def lookup(self, name):
        '''Find ``name``, searching from the innermost frame outwards. Returns a pair
        ``(found, value)``.'''
        for _label, mapping in self.frames:
            if name in mapping:
                return True, mapping[name]
        return False, None


class CaptureSet:
    '''The variables and resource bundles a closure needs, shared read-only by all items of a run.'''

    def __init__(self, variables=None, resources=()):
        self._variables = dict(sorted((variables or {}).items()))
        self._resources = tuple(dict.fromkeys(resources))

    def __repr__(self):
        return '<CaptureSet variables={!r} resources={!r}>'.format(self.names, self._resources)

    def __eq__(self, other):
        if not isinstance(other, CaptureSet):
            return NotImplemented
        return self._resources == other._resources and self._variables == other._variables

    __hash__ = None

    def __contains__(self, name):
        return name in self._variables

    def __len__(self):
        return len(self._variables)

    def __getitem__(self, name):
        return self._variables[name]

    @property
    def names(self):
        return tuple(self._variables)

    @property
    def variables(self):
        return dict(self._variables)

    @property
    def resources(self):
        return self._resources

    def bind(self, item_bindings):
        '''Return the captured variables with ``item_bindings`` substituted over them.'''
        variables = dict(self._variables)
        variables.update(item_bindings)
        return variables


def capture_value(value):
    if isinstance(value, types.ModuleType):
        return ModuleRef(value.__name__)
    return value


def as_names(names):
    '''Normalize a name or collection of names to a list.'''
    if names is None:
        return []
    elif isinstance(names, str):
        return [names]
    return list(names)


def check_export_mode(mode):
    if mode not in export_modes:
        raise ValueError('invalid export mode {!r} (valid modes: {!r})'.format(mode, export_modes))
    return mode


def discover(
    closure,
    scope=None,
    exports=(),
    resources=(),
    mode=default_export_mode,
    noexport=(),
    strict=False,
    item_names=(),
    resource_context=None,
):
    '''Compute the `CaptureSet` for ``closure``.

    ``scope`` is the enclosing scope (a `ScopeChain`, a mapping, or a list of frames); if not given,
    the closure's own lexical scope is used where it has one. ``exports`` names variables which must
    be captured whatever the mode; ``noexport`` names variables which must never be; ``item_names``
    are the loop variables, which are supplied per item and never captured. ``resources`` are merged
    with the attached resources of ``resource_context`` (by default, the process-wide one).

    Names which cannot be resolved in any enclosing scope are an error only if ``strict`` is true;
    otherwise they are left for evaluation to fail on, if it ever reads them. In
    ``explicit-and-local`` mode, names found only in outer scopes are not captured either.
    '''
    closure = as_closure(closure)
    check_export_mode(mode)
    if scope is None:
        scope = ScopeChain.from_closure(closure)
    else:
        scope = ScopeChain.coerce(scope)
    if resource_context is None:
        resource_context = _resources.default_context

    excluded = set(as_names(noexport)) | set(item_names)
    exports = [name for name in dict.fromkeys(as_names(exports)) if name not in excluded]

    variables = {}
    unresolved = set()
    for name in exports:
        found, value = scope.lookup(name)
        if found:
            variables[name] = capture_value(value)
        else:
            unresolved.add(name)

    if unresolved:
        if strict:
            raise DiscoveryError(unresolved, 'cannot resolve exported name(s) {}'.format(', '.join(map(repr, sorted(unresolved)))))
        warnings.warn(
            'exported name(s) not found in any enclosing scope: {}'.format(', '.join(map(repr, sorted(unresolved)))),
            ExportWarning,
            stacklevel=2,
        )

    if mode != EXPORT_MODE_EXPLICIT:
        search = scope.innermost() if mode == EXPORT_MODE_LOCAL else scope
        candidates = closure.free_names() - excluded - set(exports)

        automatic = {}
        outer = set()
        unresolved = set()
        for name in sorted(candidates):
            found, value = search.lookup(name)
            if found:
                automatic[name] = capture_value(value)
            elif search is not scope and scope.lookup(name)[0]:
                outer.add(name)
            elif not is_builtin(name):
                unresolved.add(name)

        if outer:
            log.debug('not capturing name(s) {!r} of {!r}, found only outside the innermost scope'.format(sorted(outer), closure))
        if unresolved:
            if strict:
                raise DiscoveryError(unresolved)
            log.debug('leaving unresolved name(s) {!r} of {!r} uncaptured'.format(sorted(unresolved), closure))

        if mode == EXPORT_MODE_AUTOMATIC_WARN and automatic:
            warnings.warn(
                'name(s) captured automatically but not exported: {}'.format(', '.join(map(repr, sorted(automatic)))),
                ExportWarning,
                stacklevel=2,
            )
        variables.update(automatic)

    capture_resources = as_names(resources) + list(resource_context.active())
    capture_set = CaptureSet(variables, capture_resources)
    log.debug('discovered {!r} for {!r} (mode {!r})'.format(capture_set, closure, mode))
    return capture_set
