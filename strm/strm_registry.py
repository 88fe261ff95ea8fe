"""
Filter behaviour records and the layered symbol registry.

The root registry (`BUILTINS`) maps every built-in name and alias to one
`Filter` instance. It is filled by the `@builtin` class decorator when the
`strm_filters_*` modules are imported, then frozen. Sessions stack a
persistent layer and an ephemeral layer on top of it for user definitions.
"""
from collections.abc import Mapping
from typing import Callable, List, Optional

from strm.strm_errors import StreamError

ARITY_KEYS = ('num_arg', 'min_arg', 'max_arg', 'req_source', 'source_or_args')


class Filter:
    """Behaviour shared by every node that names the same built-in."""
    names: tuple = ()
    num_arg: Optional[int] = None
    min_arg: Optional[int] = None
    max_arg: Optional[int] = None
    # True: source required; False: source ignored; None: optional
    req_source: Optional[bool] = None
    source_or_args: Optional[int] = None
    examples: tuple = ()

    def prepare(self, node, scope):
        return node.prepare_all(scope)

    def eval(self, node):
        raise StreamError('out of scope')

    def render(self, node, printer) -> Optional[str]:
        """Infix or other special syntax; None falls back to `ident(args)`."""
        return None

    def __repr__(self):
        return f'<Filter {self.names[0] if self.names else "?"}>'


class BodyFilter(Filter):
    """A filter whose arguments are bodies evaluated later per element.

    Arguments are prepared partially and without a source; `clear_outer`
    additionally hides the enclosing block so `#1`, `#2`... refer to the
    values the filter itself binds via `apply`.
    """
    clear_outer = False

    def prepare(self, node, scope):
        source = node.source.prepare(scope) if node.source is not None else scope.source
        inner = scope.replace(source=None, partial=True)
        if self.clear_outer:
            inner = inner.replace(outer=None)
        args = [arg.prepare(inner) for arg in node.args]
        return node.modify(source=source, args=args, allow_add_source=True).check(scope.partial)


class Computed(Filter):
    """A filter resolved to an atom as soon as it is fully prepared."""

    def prepare(self, node, scope):
        prepared = node.prepare_all(scope)
        if scope.partial:
            return prepared
        from strm.strm_datatypes import Atom
        return Atom(self.compute(prepared), prepared.token)

    def compute(self, node):
        raise NotImplementedError


class Registry:
    """One layer of the symbol table; lookups fall through to `parent`."""

    def __init__(self, parent: Optional['Registry'] = None, init=None, persistent: bool = False):
        self.parent = parent
        self.persistent = persistent
        self.bindings = {}
        self.frozen = False
        self.listeners: List[Callable] = []
        if init:
            self.init(init)

    @property
    def root(self) -> 'Registry':
        layer = self
        while layer.parent is not None:
            layer = layer.parent
        return layer

    def init(self, init):
        """Register `{ident: source text}` pairs, parsing each definition."""
        from strm.strm_parser import parse
        pairs = init.items() if isinstance(init, Mapping) else init
        for ident, text in pairs:
            self.register(ident, parse(text))

    def register(self, ident, definition):
        if isinstance(ident, (list, tuple)):
            for name in ident:
                self.register(name, definition)
            return
        key = ident.lower()
        root = self.root
        if self is root:
            if self.frozen:
                raise RuntimeError(f'built-in registry is frozen, cannot add "{key}"')
            if key in self.bindings:
                raise RuntimeError(f'duplicate built-in "{key}"')
        elif key in root.bindings:
            raise StreamError(f'trying to overwrite base symbol {key}')
        self.bindings[key] = definition
        self._notify(key, definition)

    def find(self, ident: str):
        key = ident.lower()
        layer = self
        while layer is not None:
            if key in layer.bindings:
                return layer.bindings[key]
            layer = layer.parent
        return None

    def includes(self, ident: str) -> bool:
        return ident.lower() in self.bindings

    def clear(self, ident: str, deep: bool = False) -> bool:
        """Remove a binding; `deep` also unshadows it in ancestor layers."""
        if self.parent is None:
            return False
        key = ident.lower()
        found = False
        if key in self.bindings:
            del self.bindings[key]
            self._notify(key, None)
            found = True
        if deep:
            found = self.parent.clear(key, deep=True) or found
        return found

    def child(self, init=None, persistent: bool = False) -> 'Registry':
        return Registry(self, init, persistent)

    def persistent_layer(self) -> Optional['Registry']:
        layer = self
        while layer is not None:
            if layer.persistent:
                return layer
            layer = layer.parent
        return None

    def dump(self):
        """Sorted (ident, canonical text) pairs visible from this layer, root excluded."""
        keys = set()
        layer = self
        while layer is not None and layer.parent is not None:
            keys.update(layer.bindings)
            layer = layer.parent
        return [(key, str(self.find(key))) for key in sorted(keys)]

    def freeze(self):
        self.frozen = True

    def _notify(self, key, definition):
        for listener in self.listeners:
            listener(self, key, definition)


BUILTINS = Registry()


def builtin(*names, **arity):
    """Class decorator registering a Filter subclass under `names`."""
    unknown = set(arity) - set(ARITY_KEYS)
    if unknown:
        raise TypeError(f'unknown arity constraint(s): {", ".join(sorted(unknown))}')

    def decorator(cls):
        for key, value in arity.items():
            setattr(cls, key, value)
        cls.names = names
        BUILTINS.register(list(names), cls())
        return cls
    return decorator
