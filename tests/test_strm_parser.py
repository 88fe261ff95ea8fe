import pytest
from strm.strm_parser import parse, tokenize, TokenClass
from strm.strm_errors import ParseError
from strm.strm_datatypes import Atom, Block, Node


def test_tokenize_classes_and_comments():
    tokens = tokenize('ab 12 ; note\n"x"')
    classes = [t.cls for t in tokens]
    assert classes == [
        TokenClass.IDENT, TokenClass.SPACE, TokenClass.NUMBER,
        TokenClass.SPACE, TokenClass.STRING,
    ]
    assert tokens[2].value == 12
    assert tokens[4].value == 'x'
    assert tokens[4].pos == 13


def test_tokenize_two_char_operators():
    texts = [t.text for t in tokenize('a<>b<=c>=d##')]
    assert texts == ['a', '<>', 'b', '<=', 'c', '>=', 'd', '##']


def test_string_escapes():
    node = parse(r'"a\"b\\c"')
    assert isinstance(node, Atom)
    assert node.value == 'a"b\\c'


# (id, input, canonical form)
CANONICAL_CASES = [
    ("number", "42", "42"),
    ("boolean", "true", "true"),
    ("string", '"hi"', '"hi"'),
    ("precedence", "1+2*3", "(1+(2*3))"),
    ("flattened_plus", "1+2+3", "(1+2+3)"),
    ("left_group", "(1+2)*3", "((1+2)*3)"),
    ("pow_right_assoc", "2^3^2", "(2^(3^2))"),
    ("unary_minus", "-5", "(0-5)"),
    ("chain", "range(3).first(2)", "range(3).first(2)"),
    ("chain_symbol", "iota.length", "iota.length"),
    ("foreach", "range(3):(#*2)", "range(3):((#*2))"),
    ("part", "[1,2][1]", "([1,2])[1]"),
    ("part_many", "iota[2,3]", "(iota)[2,3]"),
    ("block", "{#1+#2}(3,4)", "{(#1+#2)}(3,4)"),
    ("outer_source", "{##}", "{##}"),
    ("history_last", "$", "$"),
    ("history_nth", "$2", "$2"),
    ("over_single", "f@[1,2]", "f@([1,2])"),
    ("over_tuple", "f@([1],[2])", "f.over([1],[2])"),
    ("join_zip", "1~2%3", "(1~(2%3))"),
    ("comparison", "a<>b", "(a<>b)"),
    ("comparison_chain", "1<2<3", "(1<2<3)"),
    ("and_or", "a|b&c", "(a|(b&c))"),
    ("negative_source", "(0-1).abs", "(0-1).abs"),
    ("unary_minus_source", "(-3).abs", "(0-3).abs"),
    ("unary_minus_arg", "range(5,1,-2)", "range(5,1,(0-2))"),
    ("comment", "1+2 ; three", "(1+2)"),
]


@pytest.mark.parametrize("_id, text, expected", CANONICAL_CASES, ids=[c[0] for c in CANONICAL_CASES])
def test_canonical_form(_id, text, expected):
    assert str(parse(text)) == expected


@pytest.mark.parametrize("_id, text, expected", CANONICAL_CASES, ids=[c[0] for c in CANONICAL_CASES])
def test_canonical_form_reparses(_id, text, expected):
    assert str(parse(str(parse(text)))) == expected


# Prepared trees can hold negative atoms the parser never produces.
NEGATIVE_NODES = [
    ("operand", Node('times', None, None, [Atom(2), Atom(-3)]), "(2*(0-3))"),
    ("pow_base", Node('pow', None, None, [Atom(-3), Atom(2)]), "((0-3)^2)"),
    ("source", Node('abs', None, Atom(-3)), "(0-3).abs"),
    ("array", Node('array', None, None, [Atom(-1), Atom(1)]), "[(0-1),1]"),
]


@pytest.mark.parametrize("_id, node, expected", NEGATIVE_NODES, ids=[c[0] for c in NEGATIVE_NODES])
def test_negative_atoms_render_reparseable(_id, node, expected):
    assert str(node) == expected
    assert str(parse(expected)) == expected


def test_parse_structure():
    node = parse("range(2,5).take(2)")
    assert node.ident == 'take'
    assert node.source.ident == 'range'
    assert [a.value for a in node.source.args] == [2, 5]
    assert node.token.pos == 11


def test_block_parse():
    node = parse("{#+1}")
    assert isinstance(node, Block)
    assert node.body.ident == 'plus'


def test_hash_number_becomes_outer_argument():
    node = parse("#2")
    assert node.ident == '#in'
    assert node.args[0].value == 2
    assert node.token.text == '#2'


# (id, input, message fragment, position, length)
ERROR_CASES = [
    ("empty", "", "empty input", 0, 1),
    ("unclosed_paren", "(1+2", 'unclosed "("', 0, 1),
    ("unmatched_close", "1+2)", 'unmatched ")"', 3, 1),
    ("mismatched", "[1,2)", 'mismatched ")"', 4, 1),
    ("juxtaposition", "1 2", 'unexpected "2"', 2, 1),
    ("empty_group", "()", "empty group", 0, 2),
    ("tuple_outside_over", "(1,2)", 'unexpected ","', 0, 1),
    ("unterminated_string", '"abc', "unterminated string", 0, 4),
    ("bad_character", "1?", 'unexpected character "?"', 1, 1),
    ("chain_to_literal", "5.3", "cannot chain to a literal", 2, 1),
    ("dangling_operator", "1+", "unexpected end of input", 2, 1),
]


@pytest.mark.parametrize("_id, text, fragment, pos, length", ERROR_CASES, ids=[c[0] for c in ERROR_CASES])
def test_parse_errors(_id, text, fragment, pos, length):
    with pytest.raises(ParseError) as excinfo:
        parse(text)
    err = excinfo.value
    assert fragment in err.msg
    assert err.pos == pos
    assert err.length == length


def test_chain_to_sourced_expression_fails():
    with pytest.raises(ParseError, match="with a source"):
        parse("1.(2.abs)")


def test_identifiers_resolve_builtins():
    node = parse("foo.range(3)")
    assert isinstance(node, Node)
    assert node.known
    assert not node.source.known
