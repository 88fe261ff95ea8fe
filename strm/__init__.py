"""
strm: an interactive evaluator for a language of lazy, possibly infinite
streams.

Importing the package registers every built-in filter and freezes the root
registry.
"""
from strm.strm_registry import BUILTINS
from strm import strm_filters_lang, strm_filters_streams, strm_filters_numeric  # noqa: F401
from strm import strm_filters_combi, strm_filters_iface  # noqa: F401

BUILTINS.freeze()

from strm.strm_runtime import Session, EvalResult, StreamHandle  # noqa: E402

__all__ = ['Session', 'EvalResult', 'StreamHandle', 'BUILTINS']
