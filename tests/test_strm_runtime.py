import pytest
from strm.strm_runtime import Session, EvalResult, StreamHandle, HELP_RE


@pytest.fixture
def session():
    return Session()


def run(session, text, **kwargs):
    result = session.evaluate(text, **kwargs)
    assert result.result == 'ok', result.format_error()
    return result.output


# --- ok results ---

def test_simple_arithmetic(session):
    result = session.evaluate("1+2")
    assert result.result == 'ok'
    assert result.output == "3"
    assert result.hist_name == "$1"
    assert result.kind == 'number'
    assert str(result.hist_record) == "3"


def test_stream_output_is_truncated(session):
    result = session.evaluate("iota")
    assert result.kind == 'stream'
    assert result.output.startswith("[1,2,3,")
    assert result.output.endswith("...")
    assert len(result.output) == 100


def test_custom_output_length(session):
    assert run(session, "iota", length=10) == "[1,2,3,..."
    assert run(session, "range(3)", length=7) == "[1,2,3]"


def test_strings_and_booleans(session):
    assert run(session, '"a"+"b"') == '"ab"'
    assert run(session, "1<2") == "true"
    assert session.evaluate("1<2").kind == 'boolean'
    assert session.evaluate('"x"').kind == 'string'


# --- history ---

def test_history_references(session):
    run(session, "1+2")
    assert run(session, "$*2") == "6"
    assert run(session, "$1+1") == "4"
    result = session.evaluate("range(3)")
    assert result.hist_name == "$4"
    assert run(session, "$4.length") == "3"
    assert run(session, "history(-2)") == "[1,2,3]"


def test_history_errors(session):
    result = session.evaluate("$")
    assert result.result == 'error'
    assert result.message == 'history is empty'
    run(session, "5")
    result = session.evaluate("$7")
    assert result.result == 'error'
    assert result.message == 'history element 7 not found'


def test_clear_history(session):
    run(session, "5")
    session.clear_history()
    assert session.evaluate("$").message == 'history is empty'
    assert session.evaluate("1").hist_name == "$1"


# --- assignment and variables ---

def test_assignment_defines_filter(session):
    result = session.evaluate("f=#*2")
    assert result.output == '["f"]'
    assert result.side_effects == [{'register': 'session', 'key': 'f', 'value': '(#*2)'}]
    assert run(session, "5.f") == "10"
    assert run(session, "range(3):f") == "[2,4,6]"


def test_multiple_assignment(session):
    assert run(session, "a=b=10") == '["a","b"]'
    assert run(session, "a+b") == "20"


def test_assignment_uses_previous_value(session):
    run(session, "x=[1,2]")
    run(session, "x=x~3")
    assert run(session, "x") == "[1,2,3]"


def test_assignment_cannot_shadow_builtin(session):
    result = session.evaluate("range=5")
    assert result.result == 'error'
    assert result.message == 'trying to overwrite base symbol range'


def test_vars_lists_definitions(session):
    run(session, "f=#*2")
    run(session, "n=7")
    assert run(session, "vars") == '[["f","(#*2)"],["n","7"]]'


def test_clear_removes_definitions(session):
    run(session, "f=#*2")
    assert run(session, "clear(f,g)") == '["f"]'
    result = session.evaluate("5.f")
    assert result.result == 'error'
    assert result.message == 'symbol "f" undefined'
    assert result.error_pos == 2
    assert result.error_len == 1


def test_save_moves_definition_to_persistent_layer(session):
    run(session, "sq=#*#")
    result = session.evaluate("save(sq)")
    assert result.output == '["sq"]'
    assert {'register': 'save', 'key': 'sq', 'value': '(#*#)'} in result.side_effects
    assert session.close() == [('sq', '(#*#)')]
    assert not session.sess_reg.includes('sq')
    assert run(session, "3.sq") == "9"


def test_save_undefined_symbol(session):
    result = session.evaluate("save(nothing)")
    assert result.result == 'error'
    assert result.message == 'symbol "nothing" undefined'


def test_saved_vars_are_loaded():
    session = Session({'sq': '#*#', 'ten': '10'})
    assert session.evaluate("4.sq").output == "16"
    assert session.evaluate("ten+1").output == "11"
    assert session.close() == [('sq', '(#*#)'), ('ten', '10')]


def test_session_shadowing_and_clear_reveals_saved():
    session = Session({'n': '1'})
    run(session, "n=2")
    assert run(session, "n") == "2"
    run(session, "clear(n)")
    assert run(session, "n") == "1"


def test_with_is_local(session):
    assert run(session, "with(a=2,b=a+1,a*b)") == "6"
    assert session.evaluate("a").result == 'error'
    assert run(session, "vars") == "[]"


def test_desc_expands_user_variables(session):
    run(session, "f=#+1")
    assert run(session, "iota:f.desc") == '"iota:({(#+1)})"'


# --- randomness ---

def test_seeded_random_is_reproducible():
    first = Session().evaluate("rndstream(1,6).first(10)", seed=99)
    second = Session().evaluate("rndstream(1,6).first(10)", seed=99)
    assert first.result == 'ok'
    assert first.output == second.output


def test_random_values_in_range(session):
    for seed in range(1, 20):
        value = int(run(session, "random(3,5)", seed=seed))
        assert 3 <= value <= 5


def test_random_sample_of_source(session):
    output = run(session, '["x","y"].random(5)', seed=3)
    assert len(output.split(',')) == 5
    assert set(output.strip('[]').split(',')) <= {'"x"', '"y"'}


def test_history_repeats_random_values(session):
    first = run(session, "random(1,1000000,3)", seed=5)
    assert run(session, "$") == first


def test_rndstream_arity(session):
    result = session.evaluate("[1,2].rndstream(1)")
    assert result.result == 'error'
    assert result.message == 'zero or two arguments required'


# --- errors ---

# (id, input, message, position, length)
ERROR_CASES = [
    ("parse", "(1+2", 'unclosed "("', 0, 1),
    ("undefined", "range(3) + foo", 'symbol "foo" undefined', 11, 3),
    ("type", '1+"a"', '1 and "a" have different types', 1, 1),
    ("division", "1/0", 'division by zero', 1, 1),
    ("infinite", "iota.length", 'infinite stream', 5, 6),
    ("empty", "[].first", 'empty stream', 3, 5),
]


@pytest.mark.parametrize("_id, text, message, pos, length", ERROR_CASES, ids=[c[0] for c in ERROR_CASES])
def test_errors(session, _id, text, message, pos, length):
    result = session.evaluate(text)
    assert result.result == 'error'
    assert result.message == message
    assert result.error_pos == pos
    assert result.error_len == length
    assert not result.timeout


def test_failed_command_is_not_recorded(session):
    session.evaluate("1/0")
    assert len(session.history) == 0


def test_format_error_underlines_span(session):
    result = session.evaluate("range(3) + foo")
    text = result.format_error()
    lines = text.splitlines()
    assert lines[0].startswith('Error: symbol "foo" undefined')
    assert lines[1] == "range(3) + foo"
    assert lines[2] == " " * 11 + "^^^"


def test_format_error_without_position():
    result = EvalResult(result='error', message='boom')
    assert result.format_error() == "Error: boom"
    assert EvalResult(result='ok').format_error() == ""


def test_timeout(session):
    result = session.evaluate("iota.select(#<0).first", time=50)
    assert result.result == 'error'
    assert result.timeout
    assert result.message == 'Timed out'
    # the session stays usable
    assert run(session, "1+1") == "2"


# --- help ---

def test_help_regex():
    assert HELP_RE.match("?").group(1) is None
    assert HELP_RE.match("? range ").group(1) == "range"
    assert HELP_RE.match("?range(1)") is None


def test_help_index(session):
    result = session.evaluate("?")
    assert result.result == 'help'
    assert result.help_text.startswith("Available filters:")
    assert "range" in result.help_text
    assert "history" in result.help_text


def test_help_for_builtin(session):
    result = session.evaluate("?r")
    assert result.result == 'help'
    assert result.ident == 'r'
    assert result.canonical == 'range'
    assert "Arithmetic progression" in result.help_text
    assert "range(2,10,3)" in result.help_text
    assert "=> [2,5,8]" in result.help_text
    assert "Aliases: ran, rng, r" in result.help_text


def test_help_for_user_variable(session):
    run(session, "f=#*2")
    result = session.evaluate("?f")
    assert result.help_text == "f = (#*2)"


def test_help_for_unknown_points_at_name(session):
    result = session.evaluate("? zzz")
    assert result.result == 'error'
    assert result.message == 'Help on zzz not found'
    assert result.error_pos == 2
    assert result.error_len == 3
    assert result.format_error().splitlines()[-1] == "  ^^^"


# --- negative values in stored definitions ---

def test_negative_history_value_in_definition(session):
    run(session, "0-3")
    run(session, "y=2*$")
    run(session, "p=$1^2")
    assert run(session, "vars") == '[["p","((0-3)^2)"],["y","(2*(0-3))"]]'
    assert run(session, "y") == "-6"
    assert run(session, "p") == "9"
    run(session, "save(y,p)")
    restored = Session(dict(session.close()))
    assert not restored.rejected
    assert run(restored, "y+p") == "3"


# --- saved variables that cannot be loaded ---

def test_unloadable_saved_vars_are_kept():
    session = Session({'good': '#*2', 'bad': '(2*', 'range': '1'})
    assert sorted(session.rejected) == ['bad', 'range']
    assert run(session, "4.good") == "8"
    assert session.evaluate("bad").result == 'error'
    assert session.close() == [('bad', '(2*'), ('good', '(#*2)'), ('range', '1')]


def test_redefining_rejected_var_replaces_it():
    session = Session({'bad': '(2*'})
    run(session, "bad=5")
    run(session, "save(bad)")
    assert session.close() == [('bad', '5')]


# --- syntax check ---

def test_parse_accepts_valid_input(session):
    result = session.parse("foo(1).bar")
    assert result.result == 'ok'
    assert session.parse("?range").result == 'ok'
    assert len(session.history) == 0


def test_parse_reports_syntax_errors(session):
    result = session.parse("(1+2")
    assert result.result == 'error'
    assert result.message == 'unclosed "("'
    assert result.error_pos == 0
    assert result.error_len == 1


# --- browsing ---

def test_browse_steps_through_stream(session):
    result = session.evaluate("range(3):(#*10)", browse=True)
    assert result.result == 'ok'
    assert result.kind == 'stream'
    assert result.output is None
    handle = result.handle
    assert isinstance(handle, StreamHandle)
    assert [handle.next().output for _ in range(3)] == ["10", "20", "30"]
    end = handle.next()
    assert end.result == 'ok'
    assert end.output is None
    assert handle.exhausted
    assert handle.next().output is None
    assert len(session.history) == 0


def test_browse_infinite_stream_of_streams(session):
    handle = session.evaluate("iota:(range(#))", browse=True).handle
    handle.next()
    second = handle.next()
    assert second.output == "[1,2]"
    assert second.kind == 'stream'


def test_browse_non_stream_is_plain_result(session):
    result = session.evaluate("1+2", browse=True)
    assert result.handle is None
    assert result.output == "3"
    assert result.hist_name == "$1"


def test_browse_element_has_own_time_limit(session):
    handle = session.evaluate("iota.select(#<0)", browse=True).handle
    result = handle.next(time=50)
    assert result.result == 'error'
    assert result.timeout


def test_browse_element_errors(session):
    handle = session.evaluate("[1,0,2]:(6/#)", browse=True).handle
    assert handle.next().output == "6"
    result = handle.next()
    assert result.result == 'error'
    assert result.message == 'division by zero'


# --- lazy binomial rows ---

def test_binomial_row_is_lazy(session):
    assert run(session, "binom(20000).first") == "1"
    assert run(session, "binom(20000).length") == "20001"
    result = session.evaluate("binom(300000).select(#<0).first", time=100)
    assert result.result == 'error'
    assert result.timeout
