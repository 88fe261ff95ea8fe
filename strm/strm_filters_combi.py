"""
Combinatorics: factorials, binomial coefficients, permutations and tuples.

`perm` and `tuples` decode their n-th element directly from its index, so
skipping ahead (e.g. `range(10).perm[1000000]`) costs no more than reading
one element.
"""
import math

from strm.strm_datatypes import Atom, Node, Stream
from strm.strm_errors import StreamError
from strm.strm_registry import Filter, Computed, builtin


@builtin('factorial', 'fact', 'fac', req_source=True, num_arg=0)
class Factorial(Computed):
    """Factorial of the source."""
    examples = (('5.factorial', '120'), ('range(5):factorial', '[1,2,6,24,120]'))

    def compute(self, node):
        return math.factorial(node.source.eval_num(min=0))


@builtin('binom', min_arg=1, max_arg=2)
class Binom(Filter):
    """Binomial coefficient `n` choose `k`.

    If `k` is not given, lists the entire `n`-th row of Pascal's triangle.
    """
    examples = (('binom(6,3)', '20'), ('binom(4)', '[1,4,6,4,1]'), ('binom(3,5)', '0'))

    def eval(self, node):
        n = node.args[0].eval_num(min=0)
        if len(node.args) == 2:
            return Atom(math.comb(n, node.args[1].eval_num(min=0)))
        k = 0
        coeff = 1

        def gen():
            nonlocal k, coeff
            while k <= n:
                current = coeff
                coeff = coeff * (n - k) // (k + 1)
                k += 1
                yield Atom(current)

        def skip(count):
            nonlocal k, coeff
            k = min(k + count, n + 1)
            coeff = math.comb(n, k)
        return Stream(node, gen(), n + 1, skip)


class Indexed(Filter):
    """A finite stream whose elements are computed from their position."""

    def indexed(self, node, length, element):
        rank = 0

        def gen():
            nonlocal rank
            while rank < length:
                current = rank
                rank += 1
                yield element(current)

        def skip(count):
            nonlocal rank
            rank = min(rank + count, length)
        return Stream(node, gen(), length, skip)


def _unrank_permutation(rank: int, n: int) -> list:
    """The `rank`-th (0-based) permutation of range(n) in lexicographic order."""
    pool = list(range(n))
    result = []
    for k in range(n, 0, -1):
        index, rank = divmod(rank, math.factorial(k - 1))
        result.append(pool.pop(index))
    return result


@builtin('perm', 'perms', 'permute', req_source=True, num_arg=0)
class Perm(Indexed):
    """All orderings of the elements of a finite source, in lexicographic
    order of their positions."""
    examples = (('[1,2,3].perm', '[[1,2,3],[1,3,2],[2,1,3],[2,3,1],[3,1,2],[3,2,1]]'),
                ('range(10).perm[1000000]', '[3,8,9,4,10,2,6,5,7,1]'),
                ('range(20).perm.length', '2432902008176640000'))

    def eval(self, node):
        items = list(node.source.eval_stream(finite=True))
        n = len(items)

        def element(rank):
            order = _unrank_permutation(rank, n)
            return Node('array', node.token, None, [items[i] for i in order])
        return self.indexed(node, math.factorial(n), element)


@builtin('tuples', min_arg=1, source_or_args=2)
class Tuples(Indexed):
    """All `k`-tuples of elements of the source, or all tuples taking one
    element from each argument. The last position changes fastest."""
    examples = (('[0,1].tuples(2)', '[[0,0],[0,1],[1,0],[1,1]]'),
                ('tuples([1,2],["a","b"])', '[[1,"a"],[1,"b"],[2,"a"],[2,"b"]]'),
                ('range(0,9).tuples(6)[123457]', '[1,2,3,4,5,6]'))

    def eval(self, node):
        if node.source is not None and len(node.args) == 1:
            items = list(node.source.eval_stream(finite=True))
            factors = [items] * node.args[0].eval_num(min=0)
        else:
            if len(node.args) < 2:
                raise StreamError('at least 2 argument(s) required')
            factors = [list(arg.eval_stream(finite=True)) for arg in node.args]

        def element(rank):
            picks = []
            for factor in reversed(factors):
                rank, digit = divmod(rank, len(factor))
                picks.append(factor[digit])
            picks.reverse()
            return Node('array', node.token, None, picks)
        return self.indexed(node, math.prod(len(f) for f in factors), element)
