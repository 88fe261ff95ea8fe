"""
Core language filters: literals, chaining, arguments, history, comparison
and assignment.
"""
from strm.strm_datatypes import (
    Atom, Node, Stream, Scope, INF, MAXMEM, NUMBER, BOOLEAN, SYMBOL, EXPR,
    combined_length, compare_values, _dbg,
)
from strm.strm_errors import StreamError
from strm.strm_registry import Filter, BodyFilter, Computed, builtin


@builtin('array', req_source=False)
class Array(Filter):
    """A finite stream made of the arguments. Long form of `[...]`."""
    examples = (('array(1,3,5)', '[1,3,5]'), ('[1,[2,3],"a"]', '[1,[2,3],"a"]'))

    def eval(self, node):
        return Stream.of(node, node.args)

    def render(self, node, printer):
        return printer.prefix(node) + '[' + ','.join(printer.pformat(a) for a in node.args) + ']'


@builtin('foreach', req_source=True, num_arg=1)
class Foreach(BodyFilter):
    """Applies `body` on each element of the source. Long form of `source:body`."""
    examples = (('range(4):(#^2)', '[1,4,9,16]'), ('[1,2].foreach(#*10)', '[10,20]'))

    def eval(self, node):
        stream = node.source.eval_stream()
        body = node.args[0].check_type(SYMBOL, EXPR)

        def gen():
            for item in stream:
                yield body.prepare(Scope(source=item))
        return Stream(node, gen(), stream.length, stream.skip)

    def render(self, node, printer):
        if node.source is None:
            return 'foreach' + printer.format_args(node)
        return printer.prefix(node, ':') + '(' + printer.pformat(node.args[0]) + ')'


@builtin('#id', req_source=True, num_arg=0)
class CurrentSource(Filter):
    def prepare(self, node, scope):
        if node.source is not None:
            return node.source.prepare(scope)
        if scope.source is not None:
            return scope.source
        return node

    def render(self, node, printer):
        return printer.prefix(node) + '#'


@builtin('#in', 'in', max_arg=1)
class OuterInput(Filter):
    """Source (`##`) or n-th argument (`#n`) of the enclosing block."""

    def prepare(self, node, scope):
        outer = scope.outer
        if outer is None or outer.partial:
            return node
        if node.args:
            index = node.args[0].eval_num(min=1, max=len(outer.args))
            return outer.args[index - 1]
        return outer.source if outer.source is not None else node

    def render(self, node, printer):
        if not node.args:
            return printer.prefix(node) + '##'
        arg = node.args[0]
        if len(node.args) == 1 and isinstance(arg, Atom) and arg.type == NUMBER and arg.value > 0:
            return printer.prefix(node) + f'#{arg.value}'
        return printer.prefix(node) + 'in' + printer.format_args(node)


@builtin('#history', 'history', req_source=False, max_arg=1)
class HistoryRef(Filter):
    """Refers to a previous result: `$` is the last one, `$n` the n-th."""

    def prepare(self, node, scope):
        if scope.history is None:
            raise StreamError('out of scope')
        if node.args:
            index = node.args[0].eval_num()
            found = scope.history.at(index) if index != 0 else None
            if found is None:
                raise StreamError(f'history element {index} not found')
            return found
        found = scope.history.last()
        if found is None:
            raise StreamError('history is empty')
        return found

    def render(self, node, printer):
        if not node.args:
            return printer.prefix(node) + '$'
        arg = node.args[0]
        if len(node.args) == 1 and isinstance(arg, Atom) and arg.type == NUMBER and arg.value > 0:
            return printer.prefix(node) + f'${arg.value}'
        return printer.prefix(node) + 'history' + printer.format_args(node)


@builtin('join', req_source=False)
class Join(Filter):
    """Concatenates all arguments into a stream. Long form of `x~y~...`."""
    examples = (('join([1,2],3,"a",[[]])', '[1,2,3,"a",[]]'), ('0~range(3)', '[0,1,2,3]'))

    def eval(self, node):
        values = [arg.eval() for arg in node.args]
        lengths = [1 if isinstance(v, Atom) else v.length for v in values]
        if any(l is None for l in lengths):
            length = None
        elif any(l is INF for l in lengths):
            length = INF
        else:
            length = sum(lengths)

        def gen():
            for value in values:
                if isinstance(value, Atom):
                    yield value
                else:
                    yield from value
        return Stream(node, gen(), length)

    def render(self, node, printer):
        return printer.infix(node, '~')


@builtin('zip', req_source=False)
class Zip(Filter):
    """Reads all arguments concurrently and returns tuples of their elements.
    Long form of `x%y%...`.

    The resulting stream stops when the shortest argument does.
    """
    examples = (('[1,2,3]%["a","b"]', '[[1,"a"],[2,"b"]]'),)

    def eval(self, node):
        streams = [arg.eval_stream() for arg in node.args]

        def gen():
            while True:
                items = [next(s, None) for s in streams]
                if any(item is None for item in items):
                    return
                yield Node('array', node.token, None, items)

        def skip(count):
            for s in streams:
                s.skip(count)
        return Stream(node, gen(), combined_length(s.length for s in streams), skip)

    def render(self, node, printer):
        return printer.infix(node, '%')


def _parts(source, indices):
    """Elements of `source` at 1-based `indices`, memoizing small ones."""
    memo = []
    s_memo = source.eval_stream()
    s_skip = None
    read = 0
    for index in indices:
        if index <= MAXMEM:
            while len(memo) < index:
                item = next(s_memo, None)
                if item is None:
                    raise StreamError(f'requested part {index} beyond end')
                memo.append(item)
            yield memo[index - 1]
        else:
            if s_skip is None or index <= read:
                s_skip = source.eval_stream()
                read = 0
            s_skip.skip(index - read - 1)
            item = next(s_skip, None)
            if item is None:
                raise StreamError(f'requested part {index} beyond end')
            read = index
            yield item


@builtin('part', req_source=False, min_arg=1)
class Part(Filter):
    """Returns one or more parts of a stream. Long form of `source[...]`.

    One or more indices may be given, or a stream of them.
    """
    examples = (('range(5)[3]', '3'),
                ('range(10,20)[3,1]', '[12,10]'), ('iota[range(1,5,2)]', '[1,3,5]'))

    def eval(self, node):
        source = node.args[0]
        indices = [arg.eval() for arg in node.args[1:]]
        if all(isinstance(i, Atom) for i in indices):
            if len(indices) == 1:
                stream = source.eval_stream()
                index = indices[0].as_atom(NUMBER)
                if index < 1:
                    raise StreamError(f'expected positive, got {index}')
                stream.skip(index - 1)
                item = next(stream, None)
                if item is None:
                    raise StreamError(f'requested part {index} beyond end')
                return item.eval()
            numbers = []
            for i in indices:
                value = i.as_atom(NUMBER)
                if value < 1:
                    raise StreamError(f'expected positive, got {value}')
                numbers.append(value)
            return Stream(node, _parts(source, numbers), len(numbers))
        if len(indices) > 1:
            raise StreamError('required list of values or a single stream')
        s_index = indices[0]
        return Stream(node, _parts(source, (i.eval_num(min=1) for i in s_index)),
                      s_index.length, s_index.skip)

    def render(self, node, printer):
        indices = ','.join(printer.pformat(a) for a in node.args[1:])
        return printer.prefix(node) + f'({printer.pformat(node.args[0])})[{indices}]'


@builtin('over', req_source=True, min_arg=1)
class Over(Filter):
    """Reads all arguments concurrently and uses their elements as arguments
    for the body. Long form of `body@args`."""
    examples = (('{#1^#2}@([3,4,5],[1,2,3])', '[3,16,125]'), ('range@range(3)', '[[1],[1,2],[1,2,3]]'))

    def prepare(self, node, scope):
        source = node.source.prepare(scope.replace(partial=True)) if node.source is not None \
            else scope.source
        args = [arg.prepare(scope) for arg in node.args]
        return node.modify(source=source, args=args, allow_add_source=True).check(scope.partial)

    def eval(self, node):
        body = node.source.check_type(SYMBOL, EXPR)
        streams = [arg.eval_stream() for arg in node.args]

        def gen():
            while True:
                items = [next(s, None) for s in streams]
                if any(item is None for item in items):
                    return
                yield body.apply(items)
        return Stream(node, gen(), combined_length(s.length for s in streams))

    def render(self, node, printer):
        if node.source is not None and len(node.args) == 1:
            return printer.prefix(node, '@') + '(' + printer.pformat(node.args[0]) + ')'
        return printer.prefix(node) + 'over' + printer.format_args(node)


@builtin('equal', req_source=False, min_arg=2)
class Equal(Filter):
    """Compares two or more values for equality. Long form of `x=y`.

    Streams can be compared as long as they are finite.
    """
    examples = (('1=2', 'false'), ('[1,2,3]+1=[2,3,4]', 'true'),
                ('range(3,1)=[]=[]~[]', 'true'), ('equal([],[])', 'true'))

    def prepare(self, node, scope):
        prepared = node.prepare_all(scope)
        if not scope.partial and all(isinstance(a, Atom) for a in prepared.args):
            return Atom(compare_values(*prepared.args))
        return prepared

    def eval(self, node):
        return Atom(compare_values(*node.args))

    def render(self, node, printer):
        return printer.infix(node, '=')


@builtin('ineq', req_source=False, num_arg=2)
class Inequal(Filter):
    """Compares two values for inequality. Long form of `x<>y`."""
    examples = (('1<>2', 'true'), ('[]<>[[]]', 'true'))

    def prepare(self, node, scope):
        prepared = node.prepare_all(scope)
        if not scope.partial and all(isinstance(a, Atom) for a in prepared.args):
            return Atom(not compare_values(*prepared.args))
        return prepared

    def eval(self, node):
        return Atom(not compare_values(*node.args))

    def render(self, node, printer):
        return printer.infix(node, '<>')


def _stamp_register(node, scope):
    if scope.register is None:
        return node.meta
    return {**node.meta, '_register': scope.register}


def _register_of(node):
    register = node.meta.get('_register')
    if register is None:
        raise StreamError('out of scope')
    return register


@builtin('assign', req_source=False, min_arg=2)
class Assign(Filter):
    """Evaluating this assigns a value to one or more variables. The new
    identifiers are returned as a stream of strings.

    User-defined symbols on the right-hand side are expanded first, so a
    variable can refer to its own previous value. Assignments go to the
    session register; `save` makes them persistent.
    """
    examples = (('a=b=10', '["a","b"]'),)

    def prepare(self, node, scope):
        source = node.source.prepare(scope) if node.source is not None else scope.source
        args = list(node.args)
        body = args.pop().prepare(scope.replace(source=source, partial=True,
                                                expand=not scope.partial))
        for arg in args:
            arg.check_type(SYMBOL)
        args.append(body)
        return node.modify(source=None, args=args, meta=_stamp_register(node, scope)).check(scope.partial)

    def eval(self, node):
        register = _register_of(node)
        *targets, body = node.args
        names = []
        for target in targets:
            register.register(target.ident, body)
            names.append(Atom(target.ident))
        return Stream.of(node, names)

    def render(self, node, printer):
        return printer.infix(node, '=')


def _is_assignment(arg) -> bool:
    return arg.ident == 'assign' or (arg.ident == 'equal' and arg.token is not None
                                     and arg.token.text == '=')


@builtin('with', min_arg=2)
class With(Filter):
    """Evaluates the last argument with temporary assignments.

    The assignments are made in order in a register local to this
    expression, so each one can refer to those before it.
    """
    examples = (('with(a=2,b=a+1,a*b)', '6'),)

    def prepare(self, node, scope):
        source = node.source.prepare(scope) if node.source is not None else scope.source
        *assignments, body = node.args
        staged = []
        for arg in assignments:
            if not _is_assignment(arg):
                raise StreamError(f'expected assignment, found {arg}')
            staged.append(arg.to_assign().prepare(
                scope.replace(source=source, register=None, partial=True, expand=False)))
        body = body.prepare(scope.replace(source=source, register=None, partial=True, expand=False))
        staged.append(body)
        pnode = node.modify(source=None, args=staged,
                            meta=_stamp_register(node, scope)).check(scope.partial)
        _dbg("WITH stage 1", node, "=>", pnode)
        if scope.partial:
            return pnode
        inner = _register_of(pnode).child()
        *assignments, body = pnode.args
        for arg in assignments:
            arg.prepare(scope.replace(source=source, register=inner)).eval()
        return body.prepare(scope.replace(source=source, register=inner))


@builtin('if', num_arg=3)
class If(Filter):
    """Evaluates to the second or the third argument depending on the first."""
    examples = (('if(1<2,"yes","no")', '"yes"'), ('range(5):if(#.odd,#,0)', '[1,0,3,0,5]'))

    def prepare(self, node, scope):
        source = node.source.prepare(scope) if node.source is not None else scope.source
        args = [arg.prepare(scope.replace(source=None, partial=True)) for arg in node.args]
        pnode = node.modify(source=source, args=args, allow_add_source=True).check(scope.partial)
        if scope.partial:
            return pnode
        inner = scope.replace(source=source)
        condition = pnode.args[0].prepare(inner).eval_atom(BOOLEAN)
        return pnode.args[1 if condition else 2].prepare(inner)


@builtin('isstream', req_source=True, num_arg=0)
class IsStream(Computed):
    """Tests whether the source is a stream."""
    examples = (('[1].isstream', 'true'), ('1.isstream', 'false'))

    def compute(self, node):
        return isinstance(node.source.eval(), Stream)


@builtin('isnumber', 'isnum', req_source=True, num_arg=0)
class IsNumber(Computed):
    """Tests whether the source is a number."""
    examples = (('5.isnumber', 'true'), ('"5".isnum', 'false'))

    def compute(self, node):
        value = node.source.eval()
        return isinstance(value, Atom) and value.type == NUMBER
