"""Leaf constructors.

Every constructor adds a `Constant` (or a `Placeholder`) node to `graph`, the
default graph when omitted. The value is drawn once, at construction time.
"""

from typing import Any, Optional

import numpy as np

from revgraph import config
from revgraph.autograd import Graph, Tensor
from revgraph.ops import Constant, OnesLike, ZerosLike
from revgraph.ops import placeholder as _placeholder


def _leaf(array: np.ndarray, dtype: Any, graph: Optional[Graph]) -> Tensor:
    dtype = config.default_dtype() if dtype is None else dtype
    return Tensor.make_from_op(Constant(array.astype(dtype)), (), graph=graph)


def placeholder(*shape: int, dtype: Any = None, graph: Optional[Graph] = None) -> Tensor:
    """Leaf fed at evaluation time. Without extents its shape is unknown."""
    return _placeholder(shape if shape else None, dtype=dtype, graph=graph)


def rand(
    *shape: int,
    low: float = 0.0,
    high: float = 1.0,
    dtype: Any = None,
    graph: Optional[Graph] = None,
) -> Tensor:
    """Generate random numbers uniform between low and high"""
    array = np.random.rand(*shape) * (high - low) + low
    return _leaf(np.asarray(array), dtype, graph)


def randn(
    *shape: int,
    mean: float = 0.0,
    std: float = 1.0,
    dtype: Any = None,
    graph: Optional[Graph] = None,
) -> Tensor:
    """Generate random normal with specified mean and std deviation"""
    array = np.random.randn(*shape) * std + mean
    return _leaf(np.asarray(array), dtype, graph)


def constant(
    *shape: int,
    c: float = 1.0,
    dtype: Any = None,
    graph: Optional[Graph] = None,
) -> Tensor:
    """Generate constant Tensor"""
    return _leaf(np.full(shape, c), dtype, graph)


def ones(*shape: int, dtype: Any = None, graph: Optional[Graph] = None) -> Tensor:
    """Generate all-ones Tensor"""
    return constant(*shape, c=1.0, dtype=dtype, graph=graph)


def zeros(*shape: int, dtype: Any = None, graph: Optional[Graph] = None) -> Tensor:
    """Generate all-zeros Tensor"""
    return constant(*shape, c=0.0, dtype=dtype, graph=graph)


def ones_like(array: Tensor) -> Tensor:
    # evaluated lazily, so the shape of `array` need not be static
    return OnesLike()(array)


def zeros_like(array: Tensor) -> Tensor:
    return ZerosLike()(array)
