import pytest
from strm.strm_parser import parse
from strm.strm_datatypes import (
    Atom, Block, CustomNode, Node, Scope, Stream, INF, SYMBOL, EXPR, NUMBER,
    combined_length, compare_values,
)
from strm.strm_errors import StreamError
from strm.strm_history import History
from strm.strm_printer import Printer
from strm.strm_random import RNG
from strm.strm_registry import BUILTINS
from strm.strm_runtime import Session
from strm.strm_watchdog import watchdog


@pytest.fixture
def timed():
    with watchdog.timed_scope(5000):
        yield watchdog


def full(text, register=None):
    return parse(text).prepare(Scope(register=register))


def render(value):
    return Printer().writeout(value, 1000)


# --- Node ---

def test_modify_returns_self_when_unchanged():
    node = parse("a.b(1,2)")
    assert node.modify(source=node.source, args=list(node.args)) is node
    assert node.modify(meta=node.meta) is node


def test_modify_builds_new_node():
    node = parse("b(1,2)")
    changed = node.modify(args=[Atom(3)])
    assert changed is not node
    assert str(changed) == "b(3)"
    assert str(node) == "b(1,2)"


def test_modify_refuses_new_source_unless_allowed():
    node = parse("b(1)")
    with pytest.raises(RuntimeError):
        node.modify(source=Atom(1))
    assert str(node.modify(source=Atom(1), allow_add_source=True)) == "1.b(1)"


def test_deep_modify_restamps_tokens():
    node = parse("1+2*3")
    tok = parse("x").token
    stamped = node.deep_modify(token=tok)
    assert stamped.token is tok
    assert stamped.args[1].token is tok
    assert stamped.args[1].args[0].token is tok
    assert str(stamped) == str(node)


def test_kinds():
    assert parse("abc").kind == SYMBOL
    assert parse("abc(1)").kind == EXPR
    assert parse("{1}").kind == EXPR
    assert parse("1").kind == NUMBER


def test_node_equality_is_structural():
    assert parse("1+2") == parse("(1 + 2)")
    assert parse("1+2") != parse("2+1")
    assert hash(parse("a.b")) == hash(parse("a.b"))


# --- prepare ---

def test_prepare_folds_constant_arithmetic(timed):
    result = full("1+2*3")
    assert isinstance(result, Atom)
    assert result.value == 7


def test_partial_prepare_keeps_placeholders(timed):
    node = parse("#*2").prepare(Scope(partial=True))
    assert str(node) == "(#*2)"


def test_prepare_with_source_binds_placeholder(timed):
    node = parse("#*2").prepare(Scope(source=Atom(4)))
    assert node.value == 8


def test_block_binds_outer_arguments(timed):
    assert full("{#1^#2}(2,5)").value == 32
    assert full("3.{##+1}").value == 4


def test_undefined_symbol_fails_in_full_mode(timed):
    with pytest.raises(StreamError, match='symbol "nope" undefined'):
        full("nope+1")


def test_undefined_symbol_survives_partial_mode(timed):
    node = parse("nope+1").prepare(Scope(partial=True))
    assert str(node) == "(nope+1)"


def test_user_definition_becomes_custom_node(timed):
    reg = BUILTINS.child({'double': '#*2'})
    node = parse("range(3):double").prepare(Scope(register=reg))
    body = node.args[0]
    assert isinstance(body, CustomNode)
    assert body.ident == 'double'
    assert render(node.eval()) == "[2,4,6]"


def test_expand_inlines_user_definition(timed):
    reg = BUILTINS.child({'double': '#*2'})
    node = parse("double").prepare(Scope(register=reg, partial=True, expand=True))
    assert isinstance(node, Block)
    assert str(node) == "{(#*2)}"


def test_arity_errors(timed):
    with pytest.raises(StreamError, match="requires source"):
        full("length")
    with pytest.raises(StreamError, match="does not allow arguments"):
        full("iota(1)")
    with pytest.raises(StreamError, match="at least 1"):
        full("range()")
    with pytest.raises(StreamError, match="at most 3"):
        full("range(1,2,3,4)")


def test_error_attaches_innermost_node(timed):
    with pytest.raises(StreamError) as excinfo:
        full("range(3) + foo")
    err = excinfo.value
    assert err.pos == 11
    assert err.length == 3
    assert err.desc == "foo"


# --- streams ---

def test_stream_of_skip(timed):
    s = Stream.of(None, [Atom(i) for i in range(5)])
    s.skip(3)
    assert next(s).value == 3
    s.skip(10)
    assert next(s, None) is None


# expressions whose streams must behave the same whether skipped or pulled
SKIP_CASES = [
    "iota",
    "range(2,30,3)",
    "range(20,1,-2)",
    "[1,2,3].cycle",
    "iota*2",
    "iota%range(3,100)",
    "iota:(#*#)",
    "[1,2,3,4].perm",
    "[0,1,2].tuples(3)",
    "iota.take(2,3,2)",
    "iota.drop(4)",
    "range(5).repeat(3)",
]


@pytest.mark.parametrize("text", SKIP_CASES)
@pytest.mark.parametrize("count", [0, 1, 5])
def test_skip_matches_pulling(timed, text, count):
    skipped = full(text).eval_stream()
    pulled = full(text).eval_stream()
    skipped.skip(count)
    for _ in range(count):
        next(pulled, None)
    for _ in range(3):
        a = next(skipped, None)
        b = next(pulled, None)
        assert (a is None) == (b is None)
        if a is None:
            break
        assert render(a) == render(b)


# (expression, expected length)
LENGTH_CASES = [
    ("range(10)", 10),
    ("range(2,10,3)", 3),
    ("range(5,1,-2)", 3),
    ("range(5,1)", 0),
    ("range(1,10,-1)", 0),
    ("range(1,1,0)", INF),
    ("iota", INF),
    ("[1,2,3]", 3),
    ("iota.take(4)", 4),
    ("range(5).drop(2)", 3),
    ("iota%[1,2]", 2),
]


@pytest.mark.parametrize("text, length", LENGTH_CASES)
def test_static_lengths(timed, text, length):
    assert full(text).eval_stream().length == length


def test_range_length_matches_elements(timed):
    for text in ["range(2,10,3)", "range(5,1,-2)", "range(-3,3)", "range(7,7)"]:
        stream = full(text).eval_stream()
        assert stream.length == sum(1 for _ in full(text).eval_stream())


def test_combined_length():
    assert combined_length([3, INF, 5]) == 3
    assert combined_length([INF, INF]) is INF
    assert combined_length([3, None]) is None


def test_compare_values(timed):
    assert compare_values(full("[1,[2,3]]"), full("[1,[2,3]]"))
    assert not compare_values(full("[1,2]"), full("[1,2,3]"))
    assert not compare_values(Atom(1), Atom("1"))
    with pytest.raises(StreamError, match="infinite stream"):
        compare_values(full("iota"), full("[1]"))


def test_eval_num_bounds(timed):
    with pytest.raises(StreamError, match="expected positive"):
        full("iota.first(0)").eval()


# --- round trips of documented examples ---

def _example_inputs():
    texts = []
    for record in BUILTINS.bindings.values():
        for text, _ in record.examples:
            if text not in texts:
                texts.append(text)
    return texts


ROUND_TRIP_INPUTS = _example_inputs() + [
    "(0-2)*(0-3)",
    "{#1*(0-1)}(4)",
    "[0-1,2]:(#^2)",
    "range(5,1,-2).reverse",
]


@pytest.mark.parametrize("text", ROUND_TRIP_INPUTS)
def test_canonical_text_evaluates_the_same(text):
    direct = Session().evaluate(text, seed=1)
    again = Session().evaluate(str(parse(text)), seed=1)
    assert direct.result == 'ok', direct.format_error()
    assert again.result == 'ok', again.format_error()
    assert again.output == direct.output


@pytest.mark.parametrize("text", ROUND_TRIP_INPUTS)
def test_prepared_text_evaluates_the_same(text):
    direct = Session().evaluate(text, seed=1)
    assert direct.result == 'ok', direct.format_error()
    again = Session().evaluate(str(direct.hist_record), seed=1)
    assert again.result == 'ok', again.format_error()
    assert again.output == direct.output


@pytest.mark.parametrize("text", ROUND_TRIP_INPUTS)
def test_prepare_is_idempotent(text):
    once = Session().evaluate(text, seed=1).hist_record
    scope = Scope(register=BUILTINS.child(), history=History(), seed=RNG(1))
    with watchdog.timed_scope(5000):
        assert once.prepare(scope) == once
