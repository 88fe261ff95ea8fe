"""
Arithmetic, logic, comparison, primes and random numbers.

The binary operators (`+`, `-`, `*`, `/`, `&`, `|`) and the comparisons
resolve at prepare time when all their operands are atoms; when some operand
is a stream they vectorize over it element by element.
"""
import functools
import math

from strm.strm_datatypes import Atom, Stream, Scope, INF, MAXMEM, NUMBER, STRING, BOOLEAN, combined_length
from strm.strm_errors import StreamError
from strm.strm_random import RNG
from strm.strm_registry import Filter, BodyFilter, Computed, builtin
from strm.strm_watchdog import watchdog


def _format(value) -> str:
    atom = Atom(value)
    return str(value) if atom.type == NUMBER else str(atom)


def _trunc_div(a: int, b: int) -> int:
    """Integer division rounding towards zero."""
    if b == 0:
        raise StreamError('division by zero')
    q = abs(a) // abs(b)
    return q if (a < 0) == (b < 0) else -q


class Reducer(Filter):
    """Left fold of the arguments with `combine`, vectorized over streams."""
    sign = None
    kinds = (NUMBER,)

    def combine(self, a, b):
        raise NotImplementedError

    def fold(self, values):
        return functools.reduce(self.combine, values)

    def prepare(self, node, scope):
        prepared = node.prepare_all(scope)
        if not scope.partial and all(isinstance(a, Atom) for a in prepared.args):
            return Atom(self.fold([a.as_atom(*self.kinds) for a in prepared.args]), prepared.token)
        return prepared

    def eval(self, node):
        inputs = [arg.eval() for arg in node.args]
        if all(isinstance(i, Atom) for i in inputs):
            return Atom(self.fold([i.as_atom(*self.kinds) for i in inputs]))
        streams = [i for i in inputs if isinstance(i, Stream)]

        def gen():
            while True:
                values = []
                for i in inputs:
                    if isinstance(i, Atom):
                        values.append(i.value)
                    else:
                        item = next(i, None)
                        if item is None:
                            return
                        values.append(item.eval_atom(*self.kinds))
                yield Atom(self.fold(values))

        def skip(count):
            for s in streams:
                s.skip(count)
        return Stream(node, gen(), combined_length(s.length for s in streams), skip)

    def render(self, node, printer):
        return printer.infix(node, self.sign)


@builtin('plus', req_source=False, min_arg=2)
class Plus(Reducer):
    """Adds numbers or concatenates strings. Long form of `x+y+...`.

    Streams are added element by element.
    """
    sign = '+'
    kinds = (NUMBER, STRING)
    examples = (('1+2+3', '6'), ('"a"+"b"', '"ab"'), ('[1,2,3]+10', '[11,12,13]'),
                ('(iota+iota).first(3)', '[2,4,6]'))

    def combine(self, a, b):
        if type(a) is not type(b):
            raise StreamError(f'{_format(a)} and {_format(b)} have different types')
        return a + b


@builtin('minus', req_source=False, min_arg=2)
class Minus(Reducer):
    """Subtraction. Long form of `x-y-...`."""
    sign = '-'
    examples = (('10-3-2', '5'), ('-5', '-5'))

    def combine(self, a, b):
        return a - b


@builtin('times', req_source=False, min_arg=2)
class Times(Reducer):
    """Multiplication. Long form of `x*y*...`."""
    sign = '*'
    examples = (('2*3*4', '24'), ('range(3)*range(3)', '[1,4,9]'))

    def combine(self, a, b):
        return a * b


@builtin('div', req_source=False, min_arg=2)
class Div(Reducer):
    """Integer division, rounding towards zero. Long form of `x/y/...`."""
    sign = '/'
    examples = (('7/2', '3'), ('-7/2', '-3'))

    def combine(self, a, b):
        return _trunc_div(a, b)


@builtin('and', req_source=False, min_arg=2)
class And(Reducer):
    """Logical conjunction. Long form of `x&y&...`."""
    sign = '&'
    kinds = (BOOLEAN,)
    examples = (('true&false', 'false'),)

    def combine(self, a, b):
        return a and b


@builtin('or', req_source=False, min_arg=2)
class Or(Reducer):
    """Logical disjunction. Long form of `x|y|...`."""
    sign = '|'
    kinds = (BOOLEAN,)
    examples = (('true|false', 'true'),)

    def combine(self, a, b):
        return a or b


class SourceReducer(Filter):
    """Fold of the arguments, or of the (finite) source when none are given.

    Resolved at prepare time.
    """
    min_value = None

    def combine(self, a, b):
        raise NotImplementedError

    def prepare(self, node, scope):
        prepared = node.prepare_all(scope)
        if scope.partial:
            return prepared
        if prepared.args:
            values = [arg.eval_num(min=self.min_value) for arg in prepared.args]
            return Atom(functools.reduce(self.combine, values), prepared.token)
        result = None
        for item in prepared.source.eval_stream(finite=True):
            value = item.eval_num(min=self.min_value)
            result = value if result is None else self.combine(result, value)
        if result is None:
            raise StreamError('empty stream')
        return Atom(result, prepared.token)


@builtin('min', source_or_args=1)
class Min(SourceReducer):
    """The smallest of the arguments or of the source."""
    examples = (('min(3,1,2)', '1'), ('[5,4,6].min', '4'))

    def combine(self, a, b):
        return b if b < a else a


@builtin('max', source_or_args=1)
class Max(SourceReducer):
    """The largest of the arguments or of the source."""
    examples = (('max(3,1,2)', '3'), ('[5,4,6].max', '6'))

    def combine(self, a, b):
        return b if b > a else a


@builtin('gcd', source_or_args=1)
class Gcd(SourceReducer):
    """Greatest common divisor."""
    min_value = 1
    examples = (('gcd(12,18)', '6'), ('[4,6,10].gcd', '2'))

    def combine(self, a, b):
        return math.gcd(a, b)


@builtin('lcm', source_or_args=1)
class Lcm(SourceReducer):
    """Least common multiple."""
    min_value = 1
    examples = (('lcm(4,6)', '12'), ('range(5).lcm', '60'))

    def combine(self, a, b):
        return a * (b // math.gcd(a, b))


@builtin('total', 'tot', 'sum', req_source=True, num_arg=0)
class Total(Filter):
    """Sum of a finite stream."""
    examples = (('range(100).total', '5050'),)

    def eval(self, node):
        return Atom(sum(item.eval_num() for item in node.source.eval_stream(finite=True)))


@builtin('product', 'prod', req_source=True, num_arg=0)
class Product(Filter):
    """Product of a finite stream."""
    examples = (('range(5).product', '120'),)

    def eval(self, node):
        result = 1
        for item in node.source.eval_stream(finite=True):
            result *= item.eval_num()
            if result == 0:
                break
        return Atom(result)


@builtin('acc', 'ac', req_source=True, num_arg=0)
class Accumulate(Filter):
    """Partial sums of the source."""
    examples = (('range(5).acc', '[1,3,6,10,15]'),)

    def eval(self, node):
        stream = node.source.eval_stream()

        def gen():
            total = 0
            for item in stream:
                total += item.eval_num()
                yield Atom(total)
        return Stream(node, gen(), stream.length)


@builtin('diff', req_source=True, num_arg=0)
class Diff(Filter):
    """Differences of consecutive elements of the source."""
    examples = (('[1,4,9,16].diff', '[3,5,7]'),)

    def eval(self, node):
        stream = node.source.eval_stream()
        length = stream.length
        if isinstance(length, int) and length > 0:
            length -= 1

        def gen():
            prev = None
            for item in stream:
                curr = item.eval_num()
                if prev is not None:
                    yield Atom(curr - prev)
                prev = curr
        return Stream(node, gen(), length)


@builtin('pow', min_arg=1, max_arg=2)
class Pow(Computed):
    """Power. `x.pow(n)` or `pow(x,n)`, long form of `x^n`."""
    examples = (('2^10', '1024'), ('3.pow(2)', '9'), ('2^3^2', '512'))

    def compute(self, node):
        if len(node.args) == 1:
            if node.source is None:
                raise StreamError('requires source')
            base = node.source.eval_num()
            exponent = node.args[0].eval_num(min=0)
        else:
            base = node.args[0].eval_num()
            exponent = node.args[1].eval_num(min=0)
        return base ** exponent

    def render(self, node, printer):
        if len(node.args) == 2:
            return printer.infix(node, '^')
        return None


@builtin('mod', req_source=True, min_arg=1, max_arg=2)
class Mod(Computed):
    """Remainder after division, in the range [base, base+modulus)."""
    examples = (('10.mod(3)', '1'), ('(-1).mod(5)', '4'), ('7.mod(5,1)', '2'))

    def compute(self, node):
        value = node.source.eval_num()
        modulus = node.args[0].eval_num(min=1)
        base = node.args[1].eval_num() if len(node.args) > 1 else 0
        return (value - base) % modulus + base


@builtin('modinv', min_arg=1, max_arg=2)
class ModInv(Computed):
    """Modular inverse. `x.modinv(m)` or `modinv(x,m)`; `x` and `m` must be coprime."""
    examples = (('3.modinv(7)', '5'), ('modinv(10,17)', '12'))

    def compute(self, node):
        if len(node.args) == 1:
            if node.source is None:
                raise StreamError('requires source')
            value = node.source.eval_num(min=1)
            modulus = node.args[0].eval_num(min=1)
        else:
            value = node.args[0].eval_num(min=1)
            modulus = node.args[1].eval_num(min=1)
        try:
            return pow(value, -1, modulus)
        except ValueError:
            raise StreamError(f'{value} and {modulus} are not coprime') from None


@builtin('abs', req_source=True, num_arg=0)
class Abs(Computed):
    """Absolute value."""
    examples = (('(-3).abs', '3'),)

    def compute(self, node):
        return abs(node.source.eval_num())


@builtin('sign', 'sgn', req_source=True, num_arg=0)
class Sign(Computed):
    """Sign of the source: -1, 0 or 1."""
    examples = (('(-3).sign', '-1'),)

    def compute(self, node):
        value = node.source.eval_num()
        return (value > 0) - (value < 0)


@builtin('odd', req_source=True, num_arg=0)
class Odd(Computed):
    """Tests whether the source is odd."""
    examples = (('3.odd', 'true'), ('range(5).select(odd)', '[1,3,5]'))

    def compute(self, node):
        return node.source.eval_num() % 2 == 1


@builtin('even', req_source=True, num_arg=0)
class Even(Computed):
    """Tests whether the source is even."""
    examples = (('3.even', 'false'),)

    def compute(self, node):
        return node.source.eval_num() % 2 == 0


@builtin('not', max_arg=1, source_or_args=1)
class Not(Computed):
    """Logical negation of the argument or of the source."""
    examples = (('not(true)', 'false'), ('false.not', 'true'))

    def compute(self, node):
        target = node.args[0] if node.args else node.source
        return not target.eval_atom(BOOLEAN)


@builtin('every', 'each', 'all', req_source=True, num_arg=1)
class Every(BodyFilter):
    """Tests whether the condition holds for all elements of a finite source."""
    examples = (('[2,4].every(even)', 'true'),)

    def eval(self, node):
        condition = node.args[0]
        for item in node.source.eval_stream(finite=True):
            if not condition.prepare(Scope(source=item)).eval_atom(BOOLEAN):
                return Atom(False)
        return Atom(True)


@builtin('some', req_source=True, num_arg=1)
class Some(BodyFilter):
    """Tests whether the condition holds for some element of a finite source."""
    examples = (('[1,2].some(#>1)', 'true'),)

    def eval(self, node):
        condition = node.args[0]
        for item in node.source.eval_stream(finite=True):
            if condition.prepare(Scope(source=item)).eval_atom(BOOLEAN):
                return Atom(True)
        return Atom(False)


class Comparer(Filter):
    """Chained numeric comparison of consecutive arguments."""
    sign = None

    def test(self, a, b) -> bool:
        raise NotImplementedError

    def decide(self, values) -> bool:
        return all(self.test(a, b) for a, b in zip(values, values[1:]))

    def prepare(self, node, scope):
        prepared = node.prepare_all(scope)
        if not scope.partial and all(isinstance(a, Atom) for a in prepared.args):
            return Atom(self.decide([a.as_atom(NUMBER) for a in prepared.args]), prepared.token)
        return prepared

    def eval(self, node):
        return Atom(self.decide([arg.eval_num() for arg in node.args]))

    def render(self, node, printer):
        return printer.infix(node, self.sign)


@builtin('lt', req_source=False, min_arg=2)
class Less(Comparer):
    """Long form of `x<y<...`."""
    sign = '<'
    examples = (('1<2<3', 'true'), ('1<3<2', 'false'))

    def test(self, a, b):
        return a < b


@builtin('gt', req_source=False, min_arg=2)
class Greater(Comparer):
    """Long form of `x>y>...`."""
    sign = '>'
    examples = (('3>2', 'true'),)

    def test(self, a, b):
        return a > b


@builtin('le', req_source=False, min_arg=2)
class LessEqual(Comparer):
    """Long form of `x<=y<=...`."""
    sign = '<='
    examples = (('2<=2', 'true'),)

    def test(self, a, b):
        return a <= b


@builtin('ge', req_source=False, min_arg=2)
class GreaterEqual(Comparer):
    """Long form of `x>=y>=...`."""
    sign = '>='
    examples = (('1>=2', 'false'),)

    def test(self, a, b):
        return a >= b


# =================================================================
# Primes
# =================================================================

_prime_cache = [2, 3]


def _has_small_factor(n: int) -> bool:
    for p in _prime_cache:
        if p * p > n:
            return False
        if n % p == 0:
            return True
    return False


def _primes():
    """All primes, extending a process-wide cache on demand."""
    index = 0
    while True:
        if index == len(_prime_cache):
            candidate = _prime_cache[-1] + 2
            while _has_small_factor(candidate):
                watchdog.tick()
                candidate += 2
            _prime_cache.append(candidate)
        yield _prime_cache[index]
        index += 1


def _is_prime(value: int) -> bool:
    if value <= 1:
        return False
    for p in _primes():
        if p * p > value:
            return True
        if value % p == 0:
            return value == p


@builtin('primes', req_source=False, num_arg=0)
class Primes(Filter):
    """The infinite stream of prime numbers."""
    examples = (('primes.first(10)', '[2,3,5,7,11,13,17,19,23,29]'),)

    def eval(self, node):
        return Stream(node, (Atom(p) for p in _primes()), INF)


@builtin('isprime', req_source=True, num_arg=0)
class IsPrime(Computed):
    """Tests whether the source is a prime number."""
    examples = (('97.isprime', 'true'), ('91.isprime', 'false'))

    def compute(self, node):
        return _is_prime(node.source.eval_num())


@builtin('factor', req_source=True, num_arg=0)
class Factor(Filter):
    """Prime factors of the source, with repetition, in increasing order."""
    examples = (('60.factor', '[2,2,3,5]'), ('1.factor', '[]'))

    def eval(self, node):
        value = node.source.eval_num(min=1)

        def gen():
            rest = value
            for p in _primes():
                if rest == 1:
                    return
                if p * p > rest:
                    yield Atom(rest)
                    return
                while rest % p == 0:
                    yield Atom(p)
                    rest //= p
        return Stream(node, gen())


# =================================================================
# Random numbers
# =================================================================

def _random_values(seed, lo, hi):
    if hi < lo:
        raise StreamError(f'maximum {hi} less than minimum {lo}')
    if seed is None:
        raise RuntimeError('RNG uninitialized')
    rng = RNG(seed)
    while True:
        yield rng.random(lo, hi)


def _stamp_seed(node, scope):
    if scope.seed is None:
        return node.meta
    return {**node.meta, '_seed': scope.seed.fork()}


def _sample_source(node):
    """A fresh source stream, its length, and a way to fetch index `ix`."""
    stream = node.source.eval_stream(finite=True)
    length = stream.length
    if not isinstance(length, int):
        length = sum(1 for _ in stream)
        stream = node.source.eval_stream()
    if length == 0:
        raise StreamError('empty stream')
    if length < MAXMEM:
        data = list(stream)
        return length, data.__getitem__

    def fetch(ix):
        s = node.source.eval_stream()
        s.skip(ix)
        return next(s)
    return length, fetch


class RandomFilter(Filter):
    """Prepares like a plain filter but stamps a forked seed."""

    def stamp(self, node, scope):
        source = node.source.prepare(scope) if node.source is not None else scope.source
        args = [arg.prepare(scope.replace(source=source)) for arg in node.args]
        return node.modify(source=source, args=args, meta=_stamp_seed(node, scope),
                           allow_add_source=True).check(scope.partial)


@builtin('random', 'rnd', 'sample', min_arg=0, max_arg=3, source_or_args=2)
class Random(RandomFilter):
    """Random numbers or samples.

    `random(min,max)` is a single number, `random(min,max,count)` a stream of
    `count` numbers. `source.random` picks one element of a finite source,
    `source.random(count)` picks `count` elements with repetition.
    """

    def prepare(self, node, scope):
        prepared = self.stamp(node, scope)
        if scope.partial:
            return prepared
        if len(prepared.args) == 2:
            lo = prepared.args[0].eval_num()
            hi = prepared.args[1].eval_num()
            return Atom(next(_random_values(prepared.meta.get('_seed'), lo, hi)), prepared.token)
        return prepared

    def eval(self, node):
        seed = node.meta.get('_seed')
        if len(node.args) == 3:
            lo = node.args[0].eval_num()
            hi = node.args[1].eval_num()
            count = node.args[2].eval_num(min=1)
            values = _random_values(seed, lo, hi)
            return Stream(node, (Atom(next(values)) for _ in range(count)), count)
        length, fetch = _sample_source(node)
        indices = _random_values(seed, 0, length - 1)
        if not node.args:
            return fetch(next(indices)).eval()
        count = node.args[0].eval_num(min=1)
        return Stream(node, (fetch(next(indices)) for _ in range(count)), count)


@builtin('rndstream', 'rnds', min_arg=0, max_arg=2, source_or_args=2)
class RandomStream(RandomFilter):
    """Infinite stream of random numbers between `min` and `max`, or of random
    elements of a finite source."""

    def prepare(self, node, scope):
        prepared = self.stamp(node, scope)
        if not scope.partial and len(prepared.args) == 1:
            raise StreamError('zero or two arguments required')
        return prepared

    def eval(self, node):
        seed = node.meta.get('_seed')
        if len(node.args) == 2:
            lo = node.args[0].eval_num()
            hi = node.args[1].eval_num()
            return Stream(node, (Atom(v) for v in _random_values(seed, lo, hi)), INF)
        length, fetch = _sample_source(node)
        return Stream(node, (fetch(ix) for ix in _random_values(seed, 0, length - 1)), INF)
