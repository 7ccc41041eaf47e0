"""Process-wide settings.

Values are read once from the environment at import time and can be changed
at runtime with the setters below.
"""

import logging
import os
from typing import Union

import numpy as np

_DEFAULT_DTYPE = np.dtype(os.environ.get("REVGRAPH_DEFAULT_DTYPE", "float32"))
_CHECK_SHAPES = os.environ.get("REVGRAPH_CHECK_SHAPES", "1") not in ("0", "false", "False")

logging.getLogger("revgraph").addHandler(logging.NullHandler())


def default_dtype() -> np.dtype:
    """Floating dtype used for leaves created without an explicit dtype."""
    return _DEFAULT_DTYPE


def set_default_dtype(dtype: Union[str, np.dtype, type]) -> None:
    global _DEFAULT_DTYPE
    _DEFAULT_DTYPE = np.dtype(dtype)


def check_shapes() -> bool:
    """Whether the evaluator validates computed shapes against declared ones."""
    return _CHECK_SHAPES


def set_check_shapes(enabled: bool) -> None:
    global _CHECK_SHAPES
    _CHECK_SHAPES = bool(enabled)


def set_log_level(level: Union[int, str]) -> None:
    """Set the level of the package logger (``revgraph`` and its children)."""
    logging.getLogger("revgraph").setLevel(level)
