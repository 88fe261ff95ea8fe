"""
Defines the core data types of the strm evaluator.

Every syntactic element is a `Node`: a literal `Atom`, an expression or symbol
`Node`, a `Block` (`{...}`) or a `CustomNode` (a user definition instantiated
at a call site). Nodes are immutable by convention; `modify()` returns a new
node, or `self` when nothing changed.

Evaluating a node yields a value: an `Atom` or a lazy, single-pass `Stream`
whose elements are again nodes.
"""
import dataclasses
import functools
import os
import sys
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Tuple

from strm.strm_errors import StreamError
from strm.strm_watchdog import watchdog

NUMBER = 'number'
STRING = 'string'
BOOLEAN = 'boolean'
SYMBOL = 'symbol'
EXPR = 'expression'

MAXMEM = 1000


def _dbg(*parts):
    if os.environ.get("STRM_DEBUG"):
        print("[DBG]", *parts, file=sys.stderr)


class _Infinite:
    """Length of a stream that never ends."""
    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self):
        return 'INF'


INF = _Infinite()


def combined_length(lengths: Iterable):
    """Length of a stream that stops when the shortest of its inputs does."""
    lengths = list(lengths)
    if any(l is None for l in lengths):
        return None
    finite = [l for l in lengths if l is not INF]
    return min(finite) if finite else INF


# =================================================================
# Scope
# =================================================================

@dataclass(frozen=True)
class Outer:
    """Source and arguments of the innermost enclosing block."""
    source: Any = None
    args: Tuple = ()
    partial: bool = False


@dataclass(frozen=True)
class Scope:
    source: Any = None
    args: Optional[Tuple] = None
    register: Any = None
    outer: Optional[Outer] = None
    partial: bool = False
    expand: bool = False
    history: Any = None
    seed: Any = None
    referrer: Any = None

    def replace(self, **changes) -> 'Scope':
        return dataclasses.replace(self, **changes)


# =================================================================
# Nodes
# =================================================================

def guarded(method):
    """Tick the watchdog and attach node context to errors passing through."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        watchdog.tick()
        try:
            return method(self, *args, **kwargs)
        except StreamError as e:
            e.attach(self)
            raise
    return wrapper


_KEEP = object()


class Node:
    """An expression or a symbol.

    `ident` names a built-in filter (then `record` holds its behaviour) or a
    user definition looked up at prepare time.
    """

    def __init__(self, ident, token, source=None, args=(), meta=None):
        from strm.strm_registry import BUILTINS
        self.ident = ident
        self.token = token
        self.source = source
        self.args = tuple(args)
        self.meta = meta if meta is not None else {}
        self.record = BUILTINS.find(ident) if ident is not None else None
        self._str = None

    @property
    def bare(self) -> bool:
        return self.source is None and not self.args

    @property
    def known(self) -> bool:
        return self.record is not None

    @property
    def kind(self) -> str:
        return SYMBOL if self.bare else EXPR

    def _fields(self) -> dict:
        return dict(ident=self.ident, token=self.token, source=self.source,
                    args=self.args, meta=self.meta)

    def _rebuild(self, **changes):
        fields = self._fields()
        fields.update(changes)
        return type(self)(**fields)

    def modify(self, *, source=_KEEP, args=_KEEP, meta=_KEEP, token=_KEEP, body=_KEEP,
               allow_add_source=False):
        changes = {}
        if source is not _KEEP and source is not self.source:
            if self.source is None and not allow_add_source:
                raise RuntimeError(f'cannot add a source to {self}')
            changes['source'] = source
        if args is not _KEEP:
            args = tuple(args)
            if len(args) != len(self.args) or any(a is not b for a, b in zip(args, self.args)):
                changes['args'] = args
        if meta is not _KEEP and meta is not self.meta:
            changes['meta'] = meta
        if token is not _KEEP and token is not self.token:
            changes['token'] = token
        if body is not _KEEP and body is not getattr(self, 'body', None):
            changes['body'] = body
        if not changes:
            return self
        return self._rebuild(**changes)

    def deep_modify(self, **fields):
        source = self.source.deep_modify(**fields) if self.source is not None else None
        args = [arg.deep_modify(**fields) for arg in self.args]
        return self.modify(source=source, args=args, **fields)

    def check(self, partial: bool = False):
        """Validate arity and source against the filter's constraints."""
        rec = self.record
        if rec is None or (partial and self.bare):
            return self
        count = len(self.args)
        if rec.req_source is True and self.source is None and not partial:
            raise StreamError('requires source')
        if rec.source_or_args is not None and self.source is None and not partial \
                and count < rec.source_or_args:
            raise StreamError('requires source')
        if rec.num_arg is not None and count != rec.num_arg:
            if rec.num_arg == 0:
                raise StreamError('does not allow arguments')
            raise StreamError(f'exactly {rec.num_arg} argument(s) required')
        if rec.min_arg is not None and count < rec.min_arg:
            raise StreamError(f'at least {rec.min_arg} argument(s) required')
        if rec.max_arg is not None and count > rec.max_arg:
            if rec.max_arg == 0:
                raise StreamError('does not allow arguments')
            raise StreamError(f'at most {rec.max_arg} argument(s) required')
        return self

    def check_type(self, *kinds):
        if self.kind not in kinds:
            raise StreamError(f'expected {" or ".join(kinds)}, got {self.kind} {self}')
        return self

    @guarded
    def prepare(self, scope: Optional[Scope] = None):
        if scope is None:
            scope = Scope()
        if self.record is not None:
            return self.record.prepare(self, scope)
        return self._prepare_unknown(scope)

    def prepare_all(self, scope: Scope):
        """Default prepare: source first, then args against that source."""
        source = self.source.prepare(scope) if self.source is not None else scope.source
        args = [arg.prepare(scope.replace(source=source)) for arg in self.args]
        if not scope.partial and self.record is not None and self.record.req_source is False:
            source = None
        return self.modify(source=source, args=args, allow_add_source=True).check(scope.partial)

    def _prepare_unknown(self, scope: Scope):
        body = scope.register.find(self.ident) if scope.register is not None else None
        if isinstance(body, Node):
            body = body.deep_modify(token=self.token)
            if scope.expand:
                node = Block(body, self.token, self.source, self.args, self.meta)
            else:
                node = CustomNode(self.ident, body, self.token, self.source, self.args, self.meta)
            _dbg("SUBST", self.ident, "->", body, "in", scope.referrer)
            return node.prepare(scope)
        if not scope.partial or scope.expand:
            raise StreamError(f'symbol "{self.ident}" undefined')
        source = self.source.prepare(scope) if self.source is not None else None
        args = [arg.prepare(scope.replace(source=source)) for arg in self.args]
        return self.modify(source=source, args=args)

    @guarded
    def eval(self):
        if self.record is None:
            raise StreamError(f'symbol "{self.ident}" undefined')
        return self.record.eval(self)

    def eval_stream(self, finite: bool = False) -> 'Stream':
        value = self.eval()
        if not isinstance(value, Stream):
            raise StreamError(f'expected stream, got {value.kind} {value}')
        if finite:
            value.check_finite()
        return value

    def eval_atom(self, *kinds):
        return self.eval().as_atom(*kinds)

    def eval_num(self, min=None, max=None) -> int:
        value = self.eval_atom(NUMBER)
        if min is not None and value < min:
            raise StreamError(f'expected {"positive" if min == 1 else f"at least {min}"}, got {value}')
        if max is not None and value > max:
            raise StreamError(f'value {value} exceeds maximum {max}')
        return value

    def apply(self, args):
        """Bind this prepared body to concrete argument nodes."""
        args = tuple(args)
        if isinstance(self, Block) or self.bare:
            return self.modify(args=args).prepare(Scope())
        return self.prepare(Scope(source=args[0] if args else None, outer=Outer(None, args, False)))

    def to_assign(self):
        return Node('assign', self.token, self.source, self.args, self.meta)

    def __str__(self):
        if self._str is None:
            from strm.strm_printer import Printer
            self._str = Printer().pformat(self)
        return self._str

    def __repr__(self):
        return f'{type(self).__name__}({str(self)!r})'

    def __eq__(self, other):
        return type(self) is type(other) and str(self) == str(other)

    def __hash__(self):
        return hash((type(self).__name__, str(self)))


def kind_of(value) -> str:
    if type(value) is bool:
        return BOOLEAN
    if isinstance(value, int):
        return NUMBER
    if isinstance(value, str):
        return STRING
    raise TypeError(f'not an atom value: {value!r}')


class Atom(Node):
    """A literal: number, string or boolean. An atom is its own value."""

    def __init__(self, value, token=None, meta=None):
        super().__init__(None, token, None, (), meta)
        self.value = value
        self.type = kind_of(value)

    @property
    def kind(self) -> str:
        return self.type

    def _fields(self) -> dict:
        return dict(value=self.value, token=self.token, meta=self.meta)

    def deep_modify(self, **fields):
        return self.modify(**fields)

    @guarded
    def prepare(self, scope=None):
        return self

    @guarded
    def eval(self):
        return self

    def as_atom(self, *kinds):
        if kinds and self.type not in kinds:
            raise StreamError(f'expected {" or ".join(kinds)}, got {self.type} {self}')
        return self.value


class Block(Node):
    """A literal `{body}`, optionally with its own source and arguments."""

    def __init__(self, body, token, source=None, args=(), meta=None):
        super().__init__(None, token, source, args, meta)
        self.body = body

    @property
    def kind(self) -> str:
        return EXPR

    def _fields(self) -> dict:
        return dict(body=self.body, token=self.token, source=self.source,
                    args=self.args, meta=self.meta)

    def deep_modify(self, **fields):
        source = self.source.deep_modify(**fields) if self.source is not None else None
        args = [arg.deep_modify(**fields) for arg in self.args]
        body = self.body.deep_modify(**fields)
        return self.modify(source=source, args=args, body=body, **fields)

    @guarded
    def prepare(self, scope: Optional[Scope] = None):
        if scope is None:
            scope = Scope()
        source = self.source.prepare(scope) if self.source is not None else scope.source
        args = tuple(arg.prepare(scope.replace(source=source)) for arg in self.args)
        inner = scope.replace(source=source, outer=Outer(source, args, scope.partial))
        body = self.body.prepare(inner)
        if scope.partial:
            return self.modify(source=source, args=args, body=body, allow_add_source=True)
        return body

    @guarded
    def eval(self):
        return self.prepare(Scope()).eval()


class CustomNode(Block):
    """A user definition instantiated at a call site."""

    def __init__(self, ident, body, token, source=None, args=(), meta=None):
        super().__init__(body, token, source, args, meta)
        self.ident = ident

    def _fields(self) -> dict:
        fields = super()._fields()
        fields['ident'] = self.ident
        return fields


# =================================================================
# Streams
# =================================================================

class Stream:
    """A lazy, single-pass sequence of nodes.

    `length` is an int, None when unknown, or INF. `skip(count)` must leave the
    stream in the same state as `count` pulls would.
    """
    kind = 'stream'

    def __init__(self, node, iterator, length=None, skip=None):
        self.node = node
        self._iter = iter(iterator)
        self.length = length
        self._skip = skip

    @classmethod
    def of(cls, node, items):
        """A stream over a known list of nodes."""
        items = list(items)
        index = 0

        def gen():
            nonlocal index
            while index < len(items):
                item = items[index]
                index += 1
                yield item

        def skip(count):
            nonlocal index
            index += count

        return cls(node, gen(), len(items), skip)

    def __iter__(self):
        return self

    def __next__(self):
        watchdog.tick()
        try:
            return next(self._iter)
        except StreamError as e:
            e.attach(self.node)
            raise

    def skip(self, count: int):
        if count <= 0:
            return
        if self._skip is not None:
            try:
                self._skip(count)
            except StreamError as e:
                e.attach(self.node)
                raise
            return
        for _ in range(count):
            if next(self, None) is None:
                return

    def check_finite(self):
        if self.length is INF:
            raise StreamError('infinite stream')
        return self

    def as_atom(self, *kinds):
        raise StreamError(f'expected {" or ".join(kinds) or "atom"}, got stream {self.node}')

    def __repr__(self):
        return f'<Stream {self.node} length={self.length!r}>'


def _values_equal(a, b) -> bool:
    if isinstance(a, Atom) or isinstance(b, Atom):
        return isinstance(a, Atom) and isinstance(b, Atom) \
            and a.type == b.type and a.value == b.value
    if a.length is INF or b.length is INF:
        raise StreamError('infinite stream')
    if isinstance(a.length, int) and isinstance(b.length, int) and a.length != b.length:
        return False
    while True:
        x = next(a, None)
        y = next(b, None)
        if x is None or y is None:
            return x is None and y is None
        if not _values_equal(x.eval(), y.eval()):
            return False


def compare_values(*nodes) -> bool:
    """Structural equality of the values of consecutive nodes."""
    return all(_values_equal(a.eval(), b.eval()) for a, b in zip(nodes, nodes[1:]))
