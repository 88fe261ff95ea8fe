import pytest
from strm.strm_serialize import loads_vars, dumps_vars, load_vars, save_vars
from strm.strm_runtime import Session


def test_roundtrip_through_text():
    pairs = [('f', '(#*2)'), ('name', '"x: y"'), ('n', '5')]
    assert loads_vars(dumps_vars(pairs)) == {'f': '(#*2)', 'name': '"x: y"', 'n': '5'}


def test_dump_is_sorted():
    text = dumps_vars([('b', '1'), ('a', '2')])
    assert text.index('a') < text.index('b')


@pytest.mark.parametrize("text", ["", "   \n", None])
def test_empty_text_loads_nothing(text):
    assert loads_vars(text) == {}


def test_scalars_are_kept_as_source_text():
    assert loads_vars("a: 5\nb: true\nc: x+1\n") == {'a': '5', 'b': 'true', 'c': 'x+1'}


@pytest.mark.parametrize("text", ["- 1\n- 2\n", "a: [1, 2]\n", "1: x\n", "a: [1,\n"])
def test_invalid_documents(text):
    with pytest.raises(ValueError):
        loads_vars(text)


def test_missing_file_loads_nothing(tmp_path):
    assert load_vars(tmp_path / "nope.yaml") == {}


def test_session_state_survives_file_roundtrip(tmp_path):
    path = tmp_path / "vars.yaml"
    session = Session()
    session.evaluate("sq=#*#")
    session.evaluate("save(sq)")
    save_vars(path, session.close())

    restored = Session(load_vars(path))
    assert restored.evaluate("5.sq").output == "25"
    assert restored.close() == [('sq', '(#*#)')]
