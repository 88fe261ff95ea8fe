"""
The evaluation session: parses a command, prepares and evaluates it under
the watchdog, renders the output and records it in the history.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional

from strm.strm_datatypes import Scope, Stream, SYMBOL, _dbg
from strm.strm_errors import BaseError, TimeoutError
from strm.strm_help import format_help, help_index
from strm.strm_history import History
from strm.strm_parser import parse
from strm.strm_printer import Printer, DEFLEN
from strm.strm_random import RNG
from strm.strm_registry import BUILTINS
from strm.strm_watchdog import watchdog, DEFTIME

HELP_RE = re.compile(r'^\?\s*(\w+)?\s*$')


@dataclass
class EvalResult:
    """The structured result of evaluating one command."""
    result: Literal['ok', 'help', 'error']
    input: str = ''
    # ok
    output: Optional[str] = None
    hist_name: Optional[str] = None
    hist_record: Any = None
    kind: Optional[str] = None
    handle: Any = None
    # help
    ident: Optional[str] = None
    canonical: Optional[str] = None
    help_text: Optional[str] = None
    # error
    error_pos: Optional[int] = None
    error_len: Optional[int] = None
    error_node: Optional[str] = None
    message: Optional[str] = None
    timeout: bool = False
    side_effects: List[Dict] = field(default_factory=list)

    def format_error(self, source: Optional[str] = None) -> str:
        """The message, with a caret line under the offending span of `source`."""
        if self.result != 'error':
            return ""
        msg = f"Error: {self.message or 'Unknown error'}"
        if self.error_node and self.error_node not in msg:
            msg += f" (in {self.error_node})"
        source = self.input if source is None else source
        if self.error_pos is None or not source:
            return msg
        length = max(self.error_len or 1, 1)
        return f"{msg}\n{source}\n{' ' * self.error_pos}{'^' * length}"


class Session:
    """One user's evaluation state: registers, history and defaults.

    `saved_vars` is a `{ident: source text}` mapping loaded into the
    persistent layer; anything assigned during the session lives in a
    separate ephemeral layer on top of it until `save`d.

    Saved entries that fail to load are kept in `rejected` as
    `{ident: (text, error)}` and written back unchanged by `close`.
    """

    def __init__(self, saved_vars=None):
        self.history = History()
        self.save_reg = BUILTINS.child(persistent=True)
        self.sess_reg = self.save_reg.child()
        self.printer = Printer()
        self.rejected: Dict[str, tuple] = {}
        for ident, text in (saved_vars or {}).items():
            try:
                self.save_reg.register(ident, parse(text))
            except BaseError as e:
                _dbg("REJECT", ident, text, e.msg)
                self.rejected[ident.lower()] = (text, e)

    def evaluate(self, text: str, length: int = DEFLEN, time: int = DEFTIME,
                 seed: Optional[int] = None, browse: bool = False) -> EvalResult:
        """Evaluate one command.

        With `browse`, a stream result is not rendered or recorded; the
        result carries a `StreamHandle` for stepping through it instead.
        """
        match = HELP_RE.match(text)
        if match:
            return self._help(text, match)

        side_effects: List[Dict] = []

        def listener_for(name):
            def listener(layer, key, definition):
                side_effects.append({'register': name, 'key': key,
                                     'value': None if definition is None else str(definition)})
            return listener

        listeners = [(self.save_reg, listener_for('save')), (self.sess_reg, listener_for('session'))]
        for reg, listener in listeners:
            reg.listeners.append(listener)
        try:
            node = parse(text)
            if (node.ident == 'equal' and node.token is not None and node.token.text == '='
                    and node.source is None and node.args and node.args[0].kind == SYMBOL
                    and not browse):
                node = node.to_assign()
            _dbg("CMD", text, "->", node)
            rng = RNG(seed if seed is not None else RNG.seed())
            scope = Scope(history=self.history, register=self.sess_reg, seed=rng, referrer=node)
            with watchdog.timed_scope(time):
                prepared = node.prepare(scope)
                value = prepared.eval()
                if browse and isinstance(value, Stream):
                    return EvalResult(result='ok', input=text, kind='stream',
                                      handle=StreamHandle(value, self.printer),
                                      side_effects=side_effects)
                output = self.printer.writeout(value, length)
            index = self.history.add(prepared)
            return EvalResult(
                result='ok', input=text, output=output,
                hist_name=f'${index}', hist_record=prepared,
                kind=kind_of_value(value), side_effects=side_effects,
            )
        except BaseError as e:
            return error_result(text, e, side_effects=side_effects)
        finally:
            for reg, listener in listeners:
                reg.listeners.remove(listener)

    def parse(self, text: str) -> EvalResult:
        """Check the syntax of `text` without evaluating it."""
        if HELP_RE.match(text):
            return EvalResult(result='ok', input=text)
        try:
            parse(text)
        except BaseError as e:
            return error_result(text, e)
        return EvalResult(result='ok', input=text)

    def _help(self, text: str, match) -> EvalResult:
        ident = match.group(1)
        if ident is None:
            return EvalResult(result='help', input=text, help_text=help_index(BUILTINS))
        record = BUILTINS.find(ident)
        if record is not None:
            return EvalResult(result='help', input=text, ident=ident,
                              canonical=record.names[0], help_text=format_help(record))
        definition = self.sess_reg.find(ident)
        if definition is not None:
            return EvalResult(result='help', input=text, ident=ident, canonical=ident.lower(),
                              help_text=f'{ident.lower()} = {definition}')
        return EvalResult(result='error', input=text, ident=ident,
                          message=f'Help on {ident} not found',
                          error_pos=match.start(1), error_len=len(ident))

    def clear_history(self):
        self.history.clear()

    def close(self):
        """The persistent layer's `(ident, text)` pairs, for saving."""
        pairs = dict(self.save_reg.dump())
        for ident, (text, _) in self.rejected.items():
            pairs.setdefault(ident, text)
        return sorted(pairs.items())


class StreamHandle:
    """A stream being browsed one element at a time.

    Each `next` call runs under its own time limit. Once the stream is
    exhausted `next` returns an ok result with no output.
    """

    def __init__(self, stream: Stream, printer: Printer):
        self.stream = stream
        self.printer = printer
        self.exhausted = False

    def next(self, length: int = DEFLEN, time: int = DEFTIME) -> EvalResult:
        source = str(self.stream.node)
        if self.exhausted:
            return EvalResult(result='ok', input=source)
        try:
            with watchdog.timed_scope(time):
                item = next(self.stream, None)
                if item is None:
                    self.exhausted = True
                    return EvalResult(result='ok', input=source)
                value = item.eval()
            with watchdog.timed_scope(time):
                output = self.printer.writeout(value, length)
        except BaseError as e:
            return error_result(source, e)
        return EvalResult(result='ok', input=str(item), output=output, kind=kind_of_value(value))


def kind_of_value(value) -> str:
    return 'stream' if isinstance(value, Stream) else value.type


def error_result(text: str, e: BaseError, **fields) -> EvalResult:
    _dbg("ERROR", type(e).__name__, e.msg, e.pos, e.length)
    return EvalResult(
        result='error', input=text, message=e.msg,
        error_pos=e.pos, error_len=e.length, error_node=e.desc,
        timeout=isinstance(e, TimeoutError), **fields,
    )
