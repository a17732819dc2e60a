'''
Loop bodies ("closures") and their evaluation.

A closure is either a snippet of Python source, whose value is that of its final
expression statement (if any), or an ordinary function, called with the item bindings
that match its parameters. Either way, it is evaluated in a fresh namespace holding
only builtins, attached resources, captured variables and the item's own bindings, so
that evaluation away from the caller's scope sees exactly what was captured.
'''

import ast
import builtins
import dis
import importlib
import inspect
import logging
import types

log = logging.getLogger(__name__)

_load_opnames = frozenset(['LOAD_GLOBAL', 'LOAD_NAME', 'LOAD_FROM_DICT_OR_GLOBALS'])
_store_opnames = frozenset(['STORE_NAME', 'STORE_GLOBAL', 'DELETE_NAME', 'DELETE_GLOBAL'])


def iter_instructions(code):
    '''Yield the instructions of ``code`` and, recursively, of every code object nested in it
    (functions, lambdas, comprehensions and class bodies).'''
    yield from dis.get_instructions(code)
    for const in code.co_consts:
        if isinstance(const, types.CodeType):
            yield from iter_instructions(const)


def scan_code(code):
    '''Return a pair of sets ``(loaded, stored)`` of the global-scope names read and bound by ``code``.'''
    loaded = set()
    stored = set()
    for instruction in iter_instructions(code):
        if instruction.opname in _load_opnames:
            loaded.add(instruction.argval)
        elif instruction.opname in _store_opnames:
            stored.add(instruction.argval)
    return loaded, stored


def scan_unbound_reads(codes):
    '''Return the names which the top-level ``codes``, run one after another, may read before binding
    them. Top-level instructions are taken in order, so ``y = y + 1`` reads ``y`` from outside;
    names read by nested code objects are free unless bound anywhere at the top level.'''
    bound = set()
    free = set()
    nested = []
    for code in codes:
        for instruction in dis.get_instructions(code):
            if instruction.opname in _load_opnames:
                if instruction.argval not in bound:
                    free.add(instruction.argval)
            elif instruction.opname in _store_opnames:
                bound.add(instruction.argval)
        nested.extend(const for const in code.co_consts if isinstance(const, types.CodeType))

    for code in nested:
        loaded, _stored = scan_code(code)
        free |= loaded - bound
    return frozenset(free)


def is_builtin(name):
    return hasattr(builtins, name)


class ModuleRef:
    '''Picklable stand-in for a module captured from the caller's scope.'''

    def __init__(self, name):
        self.name = name

    def __repr__(self):
        return '<ModuleRef {!r}>'.format(self.name)

    def __eq__(self, other):
        return isinstance(other, ModuleRef) and other.name == self.name

    def __hash__(self):
        return hash((ModuleRef, self.name))

    def resolve(self):
        return importlib.import_module(self.name)


class Closure:
    '''Base class for loop bodies.'''

    name = None

    def __repr__(self):
        return '<{} {}>'.format(self.__class__.__name__, self.name)

    def free_names(self):
        '''Return the set of names read by this closure but not bound by it.'''
        raise NotImplementedError

    def lexical_frames(self):
        '''Return the scopes this closure was defined in, innermost first, as a list of
        ``(label, mapping)`` pairs, or None if they are not known.'''
        return None

    def evaluate(self, namespace, item_bindings):
        '''Evaluate this closure in ``namespace`` (a dict, used as globals), returning its value.'''
        raise NotImplementedError


class SourceClosure(Closure):
    '''A loop body given as Python source. A name is free if the source may read it before assigning
    it at the top level (so ``total += x`` reads ``total`` from the enclosing scope). The value of the
    closure is the value of the last statement, if that statement is an expression, and None otherwise.'''

    def __init__(self, source, name=None):
        self.source = inspect.cleandoc(source) if '\n' in source else source.strip()
        self.name = name or '<source>'
        self._compiled = None
        # Fail early on syntax errors, in the submitting process
        self._compile()

    def __getstate__(self):
        # code objects cannot be pickled; they are rebuilt on demand
        return {'source': self.source, 'name': self.name}

    def __setstate__(self, state):
        self.source = state['source']
        self.name = state['name']
        self._compiled = None

    def _compile(self):
        if self._compiled is None:
            filename = '<parloop {}>'.format(self.name)
            tree = ast.parse(self.source, filename, 'exec')
            body = tree.body
            expression = None
            if body and isinstance(body[-1], ast.Expr):
                expression = compile(ast.Expression(body=body[-1].value), filename, 'eval')
                body = body[:-1]
            statements = compile(ast.Module(body=body, type_ignores=[]), filename, 'exec')
            self._compiled = (statements, expression)
        return self._compiled

    def free_names(self):
        return scan_unbound_reads(code for code in self._compile() if code is not None)

    def evaluate(self, namespace, item_bindings):
        statements, expression = self._compile()
        exec(statements, namespace)
        if expression is not None:
            return eval(expression, namespace)
        return None


class FunctionClosure(Closure):
    '''A loop body given as a function. Item bindings matching the function's parameters are passed
    as keyword arguments; the rest are visible to it as globals. Its globals and closure cells are
    replaced by the evaluation namespace, so a name that was not captured is unbound when the
    function runs.

    The function must be importable by name (not a lambda or local function) to be sent to
    another process.'''

    def __init__(self, function):
        if not isinstance(function, types.FunctionType):
            raise TypeError('{!r} is not a Python function'.format(function))
        self.function = function
        self.name = function.__qualname__

    def free_names(self):
        code = self.function.__code__
        loaded, stored = scan_code(code)
        return frozenset((loaded - stored) | set(code.co_freevars))

    def lexical_frames(self):
        function = self.function
        cells = {}
        for name, cell in zip(function.__code__.co_freevars, function.__closure__ or ()):
            try:
                cells[name] = cell.cell_contents
            except ValueError:
                # empty cell
                pass
        return [('closure of {}'.format(self.name), cells), ('globals of {}'.format(function.__module__), function.__globals__)]

    def _parameters(self):
        code = self.function.__code__
        return code.co_varnames[code.co_posonlyargcount : code.co_argcount + code.co_kwonlyargcount]

    def evaluate(self, namespace, item_bindings):
        function = self.function
        code = function.__code__
        cells = []
        for name in code.co_freevars:
            try:
                cells.append(types.CellType(namespace[name]))
            except KeyError:
                cells.append(types.CellType())
        rebuilt = types.FunctionType(code, namespace, function.__name__, function.__defaults__, tuple(cells))
        rebuilt.__kwdefaults__ = function.__kwdefaults__

        if code.co_flags & inspect.CO_VARKEYWORDS:
            kwargs = dict(item_bindings)
        else:
            parameters = self._parameters()
            kwargs = {name: value for (name, value) in item_bindings.items() if name in parameters}
        return rebuilt(**kwargs)


def as_closure(body, name=None):
    '''Return a `Closure` for ``body``, which may be a closure already, a string of Python source,
    or a function.'''
    if isinstance(body, Closure):
        return body
    elif isinstance(body, str):
        return SourceClosure(body, name)
    elif isinstance(body, types.FunctionType):
        return FunctionClosure(body)
    else:
        raise TypeError('cannot use {!r} as a loop body'.format(body))


def build_namespace(capture_set, item_bindings):
    '''Build the evaluation namespace for one item: builtins, then attached resources, then captured
    variables, then the item's bindings (later entries win).'''
    namespace = {'__builtins__': builtins, '__name__': '__parloop__'}

    for resource in capture_set.resources:
        module = importlib.import_module(resource)
        toplevel = resource.partition('.')[0]
        namespace[toplevel] = importlib.import_module(toplevel) if toplevel != resource else module

    for name, value in capture_set.variables.items():
        if isinstance(value, ModuleRef):
            value = value.resolve()
        namespace[name] = value

    namespace.update(item_bindings)
    return namespace


def evaluate_item(closure, capture_set, item_bindings):
    '''Evaluate ``closure`` for a single work item. This is the task work managers run.'''
    namespace = build_namespace(capture_set, item_bindings)
    return closure.evaluate(namespace, item_bindings)
