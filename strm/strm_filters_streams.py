"""
Stream sources and stream transformations.
"""
from collections import deque

from strm.strm_datatypes import (
    Atom, Stream, Scope, INF, NUMBER, STRING, BOOLEAN, SYMBOL, EXPR, compare_values,
)
from strm.strm_errors import StreamError
from strm.strm_registry import Filter, BodyFilter, builtin


@builtin('iota', 'seq', req_source=False, num_arg=0)
class Iota(Filter):
    """The infinite stream of positive integers."""
    examples = (('iota.first(5)', '[1,2,3,4,5]'),)

    def eval(self, node):
        i = 1

        def gen():
            nonlocal i
            while True:
                value = i
                i += 1
                yield Atom(value)

        def skip(count):
            nonlocal i
            i += count
        return Stream(node, gen(), INF, skip)


def _range_length(lo: int, hi: int, step: int):
    if step == 0:
        return INF if lo <= hi else 0
    return max(0, (hi - lo) // step + 1)


@builtin('range', 'ran', 'rng', 'r', req_source=False, min_arg=1, max_arg=3)
class Range(Filter):
    """Arithmetic progression from `min` (default 1) to `max` with an
    optional step. Works on numbers and on single characters."""
    examples = (('range(5)', '[1,2,3,4,5]'), ('range(2,10,3)', '[2,5,8]'),
                ('range(5,1,-2)', '[5,3,1]'), ('range("a","e")', '["a","b","c","d","e"]'))

    def eval(self, node):
        if len(node.args) >= 2:
            lo = node.args[0].eval_atom(NUMBER, STRING)
            hi = node.args[1].eval_atom(NUMBER, STRING)
        else:
            lo, hi = 1, node.args[0].eval_num()
        step = node.args[2].eval_num() if len(node.args) > 2 else 1
        if type(lo) is not type(hi):
            raise StreamError(f'min {Atom(lo)}, max {Atom(hi)} of different types')
        chars = isinstance(lo, str)
        if chars:
            if len(lo) != 1 or len(hi) != 1:
                raise StreamError('expected single characters')
            lo, hi = ord(lo), ord(hi)
        i = lo

        def gen():
            nonlocal i
            while (i <= hi) if step >= 0 else (i >= hi):
                value = i
                i += step
                yield Atom(chr(value) if chars else value)

        def skip(count):
            nonlocal i
            i += count * step
        return Stream(node, gen(), _range_length(lo, hi, step), skip)


@builtin('length', 'len', req_source=True, num_arg=0)
class Length(Filter):
    """Number of elements of a finite stream, or of characters of a string."""
    examples = (('range(10).length', '10'), ('"abc".len', '3'))

    def eval(self, node):
        value = node.source.eval()
        if isinstance(value, Atom):
            return Atom(len(value.as_atom(STRING)))
        value.check_finite()
        if isinstance(value.length, int):
            return Atom(value.length)
        return Atom(sum(1 for _ in value))


def _taken(node, stream, count):
    """The first `count` elements of `stream`, keeping its skip and length."""
    remaining = count

    def gen():
        nonlocal remaining
        while remaining > 0:
            item = next(stream, None)
            if item is None:
                return
            remaining -= 1
            yield item

    def skip(c):
        nonlocal remaining
        c = min(c, remaining)
        stream.skip(c)
        remaining -= c

    length = stream.length
    if length is INF:
        length = count
    elif length is not None:
        length = min(length, count)
    return Stream(node, gen(), length, skip)


def _dropped(node, stream, count):
    """`stream` without its first `count` elements."""
    started = False

    def start():
        nonlocal started
        if not started:
            stream.skip(count)
            started = True

    def gen():
        start()
        yield from stream

    def skip(c):
        start()
        stream.skip(c)

    length = stream.length
    if isinstance(length, int):
        length = max(0, length - count)
    return Stream(node, gen(), length, skip)


def _takedrop(stream, counts):
    take = True
    for count in counts:
        if take:
            for _ in range(count):
                item = next(stream, None)
                if item is None:
                    return
                yield item
        else:
            stream.skip(count)
        take = not take
    if take:
        yield from stream


def _counts(node):
    """Alternating take/drop counts given as numbers or as one stream."""
    inputs = [arg.eval() for arg in node.args]
    if all(isinstance(i, Atom) for i in inputs):
        return [i.as_atom(NUMBER) for i in inputs], True
    if len(inputs) > 1:
        raise StreamError('required list of values or a single stream')
    return (i.eval_num(min=0) for i in inputs[0]), False


@builtin('first', req_source=True, max_arg=1)
class First(Filter):
    """The first element of the source, or a stream of the first `count`."""
    examples = (('iota.first', '1'), ('iota.first(3)', '[1,2,3]'))

    def eval(self, node):
        stream = node.source.eval_stream()
        if node.args:
            return _taken(node, stream, node.args[0].eval_num(min=1))
        item = next(stream, None)
        if item is None:
            raise StreamError('empty stream')
        return item.eval()


@builtin('last', req_source=True, max_arg=1)
class Last(Filter):
    """The last element of a finite source, or a stream of the last `count`."""
    examples = (('range(10).last', '10'), ('range(10).last(3)', '[8,9,10]'),
                ('range(10).select(#.odd).last(2)', '[7,9]'))

    def eval(self, node):
        stream = node.source.eval_stream(finite=True)
        length = stream.length
        if node.args:
            count = node.args[0].eval_num(min=1)
            if length is None:
                return Stream.of(node, deque(stream, maxlen=count))
            if length > count:
                stream.skip(length - count)
                length = count
            return Stream(node, stream, length, stream.skip)
        item = None
        if length is None:
            for item in stream:
                pass
        elif length > 0:
            stream.skip(length - 1)
            item = next(stream, None)
        if item is None:
            raise StreamError('empty stream')
        return item.eval()


@builtin('take', 'takedrop', 'td', req_source=True, min_arg=1)
class Take(Filter):
    """The first `count` elements of the source.

    More counts alternate between taking and dropping; the counts can also be
    given as a stream.
    """
    examples = (('iota.take(3)', '[1,2,3]'), ('iota.take(2,3,2)', '[1,2,6,7]'))

    def eval(self, node):
        stream = node.source.eval_stream()
        counts, atoms = _counts(node)
        if atoms:
            for count in counts:
                if count < 0:
                    raise StreamError(f'expected nonnegative, got {count}')
            if len(counts) == 1:
                return _taken(node, stream, counts[0])
        return Stream(node, _takedrop(stream, counts))


@builtin('drop', 'droptake', 'dt', req_source=True, min_arg=1)
class Drop(Filter):
    """The source without its first `count` elements.

    More counts alternate between dropping and taking.
    """
    examples = (('range(5).drop(2)', '[3,4,5]'), ('iota.drop(1,2,3,2)', '[2,3,7,8]'))

    def eval(self, node):
        stream = node.source.eval_stream()
        counts, atoms = _counts(node)
        if atoms:
            for count in counts:
                if count < 0:
                    raise StreamError(f'expected nonnegative, got {count}')
            if len(counts) == 1:
                return _dropped(node, stream, counts[0])
            return Stream(node, _takedrop(stream, [0] + counts))

        def with_leading_zero():
            yield 0
            yield from counts
        return Stream(node, _takedrop(stream, with_leading_zero()))


@builtin('droplast', 'dl', req_source=True, max_arg=1)
class DropLast(Filter):
    """The source without its last element, or its last `count` elements."""
    examples = (('range(5).droplast', '[1,2,3,4]'), ('range(5).droplast(2)', '[1,2,3]'))

    def eval(self, node):
        stream = node.source.eval_stream(finite=True)
        count = node.args[0].eval_num(min=1) if node.args else 1

        def gen():
            buffer = deque()
            for item in stream:
                buffer.append(item)
                if len(buffer) > count:
                    yield buffer.popleft()

        length = stream.length
        if isinstance(length, int):
            length = max(0, length - count)
        return Stream(node, gen(), length)


@builtin('reverse', 'rev', req_source=True, num_arg=0)
class Reverse(Filter):
    """A finite stream or a string in reverse order."""
    examples = (('range(3).reverse', '[3,2,1]'), ('"abc".rev', '"cba"'))

    def eval(self, node):
        value = node.source.eval()
        if isinstance(value, Atom):
            return Atom(value.as_atom(STRING)[::-1])
        value.check_finite()
        return Stream.of(node, reversed(list(value)))


@builtin('repeat', 'rep', req_source=True, max_arg=1)
class Repeat(Filter):
    """The source repeated `count` times, or forever."""
    examples = (('"a".repeat(3)', '["a","a","a"]'), ('[1,2].rep(2)', '[[1,2],[1,2]]'))

    def eval(self, node):
        source = node.source
        count = node.args[0].eval_num(min=0) if node.args else None
        i = 0

        def gen():
            nonlocal i
            while count is None or i < count:
                i += 1
                yield source

        def skip(c):
            nonlocal i
            i += c
        return Stream(node, gen(), INF if count is None else count, skip)


@builtin('cycle', 'cc', req_source=True, max_arg=1)
class Cycle(Filter):
    """The elements of the source repeated `count` times, or forever."""
    examples = (('[1,2].cycle(2)', '[1,2,1,2]'), ('[1,2].cycle.first(5)', '[1,2,1,2,1]'))

    def eval(self, node):
        source = node.source
        first = source.eval_stream()
        length = first.length
        if node.args:
            count = node.args[0].eval_num(min=0)

            def gen():
                for i in range(count):
                    yield from (first if i == 0 else source.eval_stream())
            if count == 0:
                length = 0
            elif isinstance(length, int):
                length *= count
            return Stream(node, gen(), length)

        def forever():
            if length == 0:
                return
            stream = first
            while True:
                yield from stream
                stream = source.eval_stream()
        return Stream(node, forever(), 0 if length == 0 else INF)


@builtin('flatten', 'fl', req_source=True, max_arg=1)
class Flatten(Filter):
    """Expands nested streams into their elements, optionally only `depth`
    levels deep."""
    examples = (('[1,[2,[3]]].flatten', '[1,2,3]'), ('[1,[2,[3]]].fl(1)', '[1,2,[3]]'))

    def eval(self, node):
        depth = node.args[0].eval_num(min=0) if node.args else None
        value = node.source.eval()
        if isinstance(value, Atom):
            return Stream.of(node, [value])

        def flat(stream, depth):
            for item in stream:
                inner = item.eval()
                if isinstance(inner, Stream) and depth != 0:
                    yield from flat(inner, None if depth is None else depth - 1)
                else:
                    yield item
        return Stream(node, flat(value, depth))


@builtin('nest', req_source=True, num_arg=1)
class Nest(BodyFilter):
    """The source, then the body applied to it, then to that, and so on."""
    examples = (('1.nest(#*2).first(5)', '[1,2,4,8,16]'),)

    def eval(self, node):
        body = node.args[0].check_type(SYMBOL, EXPR)

        def gen():
            curr = node.source
            while True:
                yield curr
                curr = body.prepare(Scope(source=curr))
        return Stream(node, gen(), INF)


@builtin('fold', req_source=True, min_arg=1, max_arg=3)
class Fold(BodyFilter):
    """Running accumulation: `body` is applied to the previous result (`#1`)
    and the next element (`#2`).

    An initial value may be given as the last argument. With three arguments
    the first body updates the memory and the second computes the output.
    """
    clear_outer = True
    examples = (('range(5).fold(#1+#2)', '[1,3,6,10,15]'), ('range(3).fold(#1*#2,10)', '[10,20,60]'))

    def eval(self, node):
        stream = node.source.eval_stream()
        body_mem = node.args[0].check_type(SYMBOL, EXPR)
        body_out = node.args[1].check_type(SYMBOL, EXPR) if len(node.args) == 3 else body_mem
        curr = node.args[-1].prepare(Scope(source=node.source)) if len(node.args) > 1 else None

        def gen():
            nonlocal curr
            for item in stream:
                value = body_out.apply([curr, item]) if curr is not None else item
                curr = value if body_mem is body_out else body_mem.apply([curr, item])
                yield value
        return Stream(node, gen(), stream.length)


@builtin('reduce', req_source=True, min_arg=1, max_arg=2)
class Reduce(BodyFilter):
    """Like `fold` but returns only the final result."""
    clear_outer = True
    examples = (('range(5).reduce(#1+#2)', '15'), ('range(4).reduce(#1*#2,1)', '24'))

    def eval(self, node):
        stream = node.source.eval_stream(finite=True)
        body = node.args[0].check_type(SYMBOL, EXPR)
        curr = node.args[-1].prepare(Scope(source=node.source)) if len(node.args) > 1 else None
        for item in stream:
            curr = body.apply([curr, item]) if curr is not None else item
        if curr is None:
            raise StreamError('empty stream')
        return curr.eval()


@builtin('select', 'sel', 'where', req_source=True, num_arg=1)
class Select(BodyFilter):
    """The elements of the source satisfying the condition."""
    examples = (('range(10).select(#.odd)', '[1,3,5,7,9]'),)

    def eval(self, node):
        stream = node.source.eval_stream()
        condition = node.args[0]

        def gen():
            for item in stream:
                if condition.prepare(Scope(source=item)).eval_atom(BOOLEAN):
                    yield item
        return Stream(node, gen())


@builtin('while', req_source=True, num_arg=1)
class While(BodyFilter):
    """The elements of the source as long as the condition holds."""
    examples = (('iota.while(#<4)', '[1,2,3]'),)

    def eval(self, node):
        stream = node.source.eval_stream()
        condition = node.args[0]

        def gen():
            for item in stream:
                if not condition.prepare(Scope(source=item)).eval_atom(BOOLEAN):
                    return
                yield item
        return Stream(node, gen())


def _sorted(items, key):
    """Sort by the atom `key(item)`; all keys are numbers or all strings."""
    if not items:
        return items
    keys = [key(item) for item in items]
    kind = keys[0].type if isinstance(keys[0], Atom) else 'stream'
    if kind not in (NUMBER, STRING):
        raise StreamError(f'expected number or string, got {kind} {keys[0]}')
    values = [k.as_atom(kind) for k in keys]
    order = sorted(range(len(items)), key=values.__getitem__)
    return [items[i] for i in order]


@builtin('sort', req_source=True, max_arg=1)
class Sort(BodyFilter):
    """Sorts a finite stream of numbers or strings, optionally by a key."""
    examples = (('[3,1,2].sort', '[1,2,3]'), ('["b","a"].sort', '["a","b"]'),
                ('[3,1,2].sort(-#)', '[3,2,1]'))

    def eval(self, node):
        items = list(node.source.eval_stream(finite=True))
        if node.args:
            body = node.args[0]
            result = _sorted(items, lambda item: body.prepare(Scope(source=item)).eval())
        else:
            result = _sorted([item.eval() for item in items], lambda value: value)
        return Stream.of(node, result)


@builtin('count', req_source=True, num_arg=1)
class Count(Filter):
    """Number of elements of a finite source equal to the argument."""
    examples = (('[1,2,1].count(1)', '2'),)

    def eval(self, node):
        ref = node.args[0]
        stream = node.source.eval_stream(finite=True)
        return Atom(sum(1 for item in stream if compare_values(item, ref)))


@builtin('includes', req_source=True, num_arg=1)
class Includes(Filter):
    """Tests whether the source contains the argument."""
    examples = (('range(5).includes(3)', 'true'), ('range(5).includes(6)', 'false'))

    def eval(self, node):
        ref = node.args[0]
        for item in node.source.eval_stream():
            if compare_values(item, ref):
                return Atom(True)
        return Atom(False)
