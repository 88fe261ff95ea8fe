"""
A printer for strm nodes and values.
"""
from strm.strm_datatypes import Atom, Block, CustomNode, Node, Stream, NUMBER, STRING

DEFLEN = 100


class Printer:
    """Formats nodes into canonical, re-parseable strm source."""

    def __init__(self):
        self._handlers = self._create_handlers()

    def pformat(self, obj) -> str:
        """Public entry point to format a node."""
        handler = self._get_handler(obj)
        return handler(obj)

    def _get_handler(self, obj):
        obj_type = type(obj)
        if obj_type in self._handlers:
            return self._handlers[obj_type]
        if isinstance(obj, Node):
            return self._pformat_node
        return repr

    def _create_handlers(self):
        return {
            Atom: self._pformat_atom,
            Node: self._pformat_node,
            Block: self._pformat_block,
            CustomNode: self._pformat_node,
            Stream: lambda s: f'<stream {self.pformat(s.node)}>',
        }

    def _pformat_atom(self, atom: Atom) -> str:
        if atom.type == STRING:
            escaped = atom.value.replace('\\', '\\\\').replace('"', '\\"')
            return f'"{escaped}"'
        if atom.type == NUMBER:
            # `-` is only unary at the start of an expression
            if atom.value < 0:
                return f'(0-{-atom.value})'
            return str(atom.value)
        return 'true' if atom.value else 'false'

    def format_value(self, atom: Atom) -> str:
        """An evaluated atom as shown to the user."""
        if atom.type == NUMBER:
            return str(atom.value)
        return self.pformat(atom)

    def _pformat_node(self, node: Node) -> str:
        if node.record is not None:
            text = node.record.render(node, self)
            if text is not None:
                return text
        return self.prefix(node) + node.ident + self.format_args(node)

    def _pformat_block(self, block: Block) -> str:
        return self.prefix(block) + '{' + self.pformat(block.body) + '}' + self.format_args(block)

    # -- helpers used by Filter.render ------------------------------------

    def prefix(self, node: Node, sep: str = '.') -> str:
        """`source.` (or `source<sep>`) when the node has a source."""
        source = node.source
        if source is None:
            return ''
        return self.pformat(source) + sep

    def format_args(self, node: Node) -> str:
        if not node.args:
            return ''
        return '(' + ','.join(self.pformat(arg) for arg in node.args) + ')'

    def infix(self, node: Node, sign: str) -> str:
        """`(a<sign>b<sign>c)`, or plain call syntax for fewer than two args."""
        if len(node.args) < 2:
            return self.prefix(node) + node.ident + self.format_args(node)
        inner = sign.join(self.pformat(arg) for arg in node.args)
        return self.prefix(node) + '(' + inner + ')'

    # -- output -------------------------------------------------------------

    def writeout(self, value, max_len: int = DEFLEN) -> str:
        """Render an evaluated value, cut to `max_len` characters.

        Streams are pulled only as far as the output needs, so infinite
        streams print as a truncated prefix.
        """
        pieces = []
        size = 0
        for piece in self._writeout_gen(value):
            pieces.append(piece)
            size += len(piece)
            if size > max_len:
                return ''.join(pieces)[:max(max_len - 3, 0)] + '...'
        return ''.join(pieces)

    def _writeout_gen(self, value):
        if not isinstance(value, Stream):
            value = value.eval()
        if isinstance(value, Atom):
            yield self.format_value(value)
            return
        yield '['
        first = True
        for item in value:
            if not first:
                yield ','
            first = False
            yield from self._writeout_gen(item)
        yield ']'
