"""
Error taxonomy for the strm evaluator.

ParseError and StreamError carry a source span (`pos`, `length`) so the REPL can
underline the offending part of the input. TimeoutError is raised by the
watchdog and has no span.
"""


class BaseError(Exception):
    """Base class for all user-facing strm errors."""
    def __init__(self, msg: str):
        super().__init__(msg)
        self.msg = msg
        self.pos = None
        self.length = None
        self.desc = None

    def __str__(self):
        return self.msg


class ParseError(BaseError):
    """Malformed source text."""
    def __init__(self, msg: str, pos: int, length: int = 1):
        super().__init__(msg)
        self.pos = pos
        self.length = max(length, 1)


class StreamError(BaseError):
    """Semantic or runtime failure during prepare or eval.

    The node context is attached exactly once, by the innermost node whose
    `prepare`/`eval` the error unwinds through.
    """
    def __init__(self, msg: str, node=None):
        super().__init__(msg)
        self.node = None
        if node is not None:
            self.attach(node)

    def attach(self, node) -> bool:
        if self.node is not None:
            return False
        token = getattr(node, 'token', None)
        if token is None:
            return False
        self.node = node
        self.pos = token.pos
        self.length = len(token.text)
        self.desc = str(node)
        return True


class TimeoutError(BaseError):
    """Evaluation exceeded its time limit."""
    def __init__(self, count: int):
        super().__init__('Timed out')
        self.count = count
