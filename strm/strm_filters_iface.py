"""
Session interface filters: inspecting, clearing and persisting user
definitions.
"""
from strm.strm_datatypes import Atom, Node, Stream, SYMBOL
from strm.strm_errors import StreamError
from strm.strm_registry import Filter, builtin


def _stamp_register(node, scope, args=None):
    meta = node.meta
    if scope.register is not None:
        meta = {**node.meta, '_register': scope.register}
    return node.modify(source=None, args=node.args if args is None else args, meta=meta)


def _register_of(node):
    register = node.meta.get('_register')
    if register is None:
        raise StreamError('out of scope')
    return register


class SymbolFilter(Filter):
    """A filter taking bare identifiers as arguments, bound to the register
    of the command that prepared it."""

    def prepare(self, node, scope):
        for arg in node.args:
            arg.check_type(SYMBOL)
        return _stamp_register(node, scope).check(scope.partial)


@builtin('clear', req_source=False, min_arg=1)
class Clear(SymbolFilter):
    """Removes session variables. Returns the identifiers actually cleared.

    A cleared session variable reveals a saved one of the same name.
    """

    def eval(self, node):
        register = _register_of(node)
        cleared = [Atom(arg.ident) for arg in node.args if register.clear(arg.ident)]
        return Stream.of(node, cleared)


@builtin('save', req_source=False, min_arg=1)
class Save(SymbolFilter):
    """Moves variables to the persistent register, so they are kept across
    sessions. Returns the identifiers saved."""

    def eval(self, node):
        register = _register_of(node)
        target = register.persistent_layer()
        if target is None:
            raise StreamError('no persistent register')
        saved = []
        for arg in node.args:
            body = register.find(arg.ident)
            if not isinstance(body, Node):
                raise StreamError(f'symbol "{arg.ident}" undefined')
            target.register(arg.ident, body)
            layer = register
            while layer is not target:
                layer.clear(arg.ident)
                layer = layer.parent
            saved.append(Atom(arg.ident))
        return Stream.of(node, saved)


@builtin('vars', req_source=False, num_arg=0)
class Vars(Filter):
    """Lists all user-defined variables as `[name, definition]` pairs."""

    def prepare(self, node, scope):
        return _stamp_register(node, scope).check(scope.partial)

    def eval(self, node):
        pairs = [Node('array', node.token, None, [Atom(key), Atom(text)])
                 for key, text in _register_of(node).dump()]
        return Stream.of(node, pairs)


@builtin('desc', req_source=True, num_arg=0)
class Desc(Filter):
    """The source, with user variables expanded, as a string."""
    examples = (('(1+2).desc', '"(1+2)"'), ('iota:(#+1).desc', '"iota:((#+1))"'))

    def prepare(self, node, scope):
        if node.source is not None:
            source = node.source.prepare(scope.replace(partial=True, expand=not scope.partial))
        else:
            source = scope.source
        prepared = node.modify(source=source, allow_add_source=True).check(scope.partial)
        if scope.partial:
            return prepared
        return Atom(str(prepared.source), prepared.token)
