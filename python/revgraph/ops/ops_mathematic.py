"""Elementary tensor operators (leaves, ewise, scalars, reductions, broadcast).

Each operator subclasses `TensorOp` and implements:
  - compute(*ndarrays) -> ArrayValue | ndarray   forward pass on numpy arrays
  - gradient(out_grad, node) -> Tensor | tuple[Tensor | None, ...]

Binary elementwise ops follow numpy broadcasting. Their gradients reduce the
incoming gradient back to each operand's shape with `ReduceSumToShape`, whose
target is a runtime shape tensor.
"""

from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from revgraph import config
from revgraph.errors import ComputeError, GraphError
from revgraph.ops.op import (
    ArrayValue,
    ElementwiseOp,
    NonDifferentiableOp,
    Owned,
    StaticShape,
    TensorOp,
    View,
)

if TYPE_CHECKING:
    from revgraph.autograd import Graph, Tensor


##############################
########### Leaves ###########
##############################


class Placeholder(NonDifferentiableOp):
    """Leaf whose value is supplied at evaluation time through a feed dict."""

    def __init__(self, shape: Optional[Sequence[int]] = None, dtype: Any = None) -> None:
        self.shape = None if shape is None else tuple(int(d) for d in shape)
        self.dtype = None if dtype is None else np.dtype(dtype)

    def compute(self, *args: np.ndarray) -> ArrayValue:
        raise ComputeError("placeholder was not fed a value")

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return self.shape


class Constant(NonDifferentiableOp):
    """Leaf holding a read-only array."""

    def __init__(self, value: np.ndarray) -> None:
        self.value = np.array(value)
        self.value.flags.writeable = False

    def compute(self, *args: np.ndarray) -> ArrayValue:
        return View(self.value)

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return self.value.shape

    def __repr__(self) -> str:
        return f"Constant(shape={self.value.shape}, dtype={self.value.dtype})"


def constant(value: Any, dtype: Any = None, graph: Optional["Graph"] = None) -> "Tensor":
    """Create a constant leaf.

    Python floats and lists of floats take `config.default_dtype()`; numpy
    arrays keep their dtype unless `dtype` is given.
    """
    from revgraph.autograd import Tensor

    array = np.asarray(value, dtype=dtype)
    if dtype is None and array.dtype.kind == "f" and not isinstance(value, np.ndarray):
        array = array.astype(config.default_dtype())
    return Tensor.make_from_op(Constant(array), (), graph=graph)


def placeholder(
    shape: Optional[Sequence[int]] = None,
    dtype: Any = None,
    graph: Optional["Graph"] = None,
) -> "Tensor":
    """Create a leaf to be fed at evaluation time."""
    from revgraph.autograd import Tensor

    return Tensor.make_from_op(Placeholder(shape, dtype), (), graph=graph)


class OnesLike(NonDifferentiableOp):
    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(np.ones_like(a))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return shapes[0]


def ones_like(a: "Tensor") -> "Tensor":
    return OnesLike()(a)


class ZerosLike(NonDifferentiableOp):
    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(np.zeros_like(a))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return shapes[0]


def zeros_like(a: "Tensor") -> "Tensor":
    return ZerosLike()(a)


##############################
###### Binary elementwise ####
##############################


class BinaryOp(TensorOp):
    """Elementwise op over two operands with numpy broadcasting."""

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        a, b = shapes
        if a is None or b is None:
            return None
        try:
            return tuple(np.broadcast_shapes(a, b))
        except ValueError as e:
            raise GraphError(
                f"{self.name()}: shapes {a} and {b} cannot be broadcast"
            ) from e


def _reduce_to(grad: "Tensor", x: "Tensor") -> "Tensor":
    """Sum `grad` over the axes along which `x` was broadcast."""
    if grad.shape is not None and grad.shape == x.shape:
        return grad
    from revgraph.ops.ops_array import shape

    return ReduceSumToShape()(grad, shape(x))


class EWiseAdd(BinaryOp):
    """Elementwise addition of two tensors."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, b) = args
        return Owned(a + b)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", "Tensor"]:
        lhs, rhs = node.inputs
        return _reduce_to(out_grad, lhs), _reduce_to(out_grad, rhs)


def add(a: "Tensor", b: "Tensor") -> "Tensor":
    return EWiseAdd()(a, b)


class EWiseSub(BinaryOp):
    """Elementwise subtraction of two tensors."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, b) = args
        return Owned(a - b)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", "Tensor"]:
        lhs, rhs = node.inputs
        return _reduce_to(out_grad, lhs), _reduce_to(-out_grad, rhs)


def subtract(a: "Tensor", b: "Tensor") -> "Tensor":
    return EWiseSub()(a, b)


class EWiseMul(BinaryOp):
    """Elementwise multiplication of two tensors."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, b) = args
        return Owned(a * b)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", "Tensor"]:
        lhs, rhs = node.inputs
        return _reduce_to(out_grad * rhs, lhs), _reduce_to(out_grad * lhs, rhs)


def multiply(a: "Tensor", b: "Tensor") -> "Tensor":
    return EWiseMul()(a, b)


class EWiseDiv(BinaryOp):
    """Op to element-wise divide two nodes."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, b) = args
        return Owned(a / b)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", "Tensor"]:
        a, b = node.inputs
        return _reduce_to(out_grad / b, a), _reduce_to(out_grad * -a / b**2, b)


def divide(a: "Tensor", b: "Tensor") -> "Tensor":
    return EWiseDiv()(a, b)


class Greater(BinaryOp):
    """Elementwise indicator of a > b, in the operands' dtype."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, b) = args
        return Owned((a > b).astype(np.result_type(a, b)))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple[None, None]:
        return None, None


class GreaterScalar(NonDifferentiableOp, ElementwiseOp):
    """Elementwise indicator of a > scalar, in the input's dtype."""

    def __init__(self, scalar: float) -> None:
        self.scalar = scalar

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned((a > self.scalar).astype(a.dtype))


def greater(a: "Tensor", b: Union["Tensor", float]) -> "Tensor":
    from revgraph.autograd import Tensor

    if isinstance(b, Tensor):
        return Greater()(a, b)
    return GreaterScalar(b)(a)


##############################
###### Unary elementwise #####
##############################


class AddScalar(ElementwiseOp):
    """Add a scalar to a tensor."""

    def __init__(self, scalar: float) -> None:
        self.scalar = scalar

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(a + self.scalar)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return out_grad


class MulScalar(ElementwiseOp):
    """Multiply a tensor by a scalar."""

    def __init__(self, scalar: float) -> None:
        self.scalar = scalar

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(a * self.scalar)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return out_grad * self.scalar


class PowerScalar(ElementwiseOp):
    """Op raise a tensor to a scalar power."""

    def __init__(self, scalar: float) -> None:
        self.scalar = scalar

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(a**self.scalar)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        a = node.inputs[0]
        return out_grad * self.scalar * a ** (self.scalar - 1)


class Negate(ElementwiseOp):
    """Elementwise negation."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(-a)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return -out_grad


class Exp(ElementwiseOp):
    """Elementwise exponential."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(np.exp(a))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return out_grad * node


def exp(a: "Tensor") -> "Tensor":
    return Exp()(a)


class Log(ElementwiseOp):
    """Elementwise natural logarithm."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(np.log(a))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return out_grad / node.inputs[0]


def log(a: "Tensor") -> "Tensor":
    return Log()(a)


##############################
######## Reductions ##########
##############################


def _axes_tuple(
    axes: Optional[Union[int, Tuple[int, ...], List[int]]]
) -> Optional[Tuple[int, ...]]:
    if axes is None:
        return None
    if isinstance(axes, (int, np.integer)):
        return (int(axes),)
    return tuple(int(a) for a in axes)


class ReduceSum(TensorOp):
    """Sum reduction over specified axes (or all axes if None)."""

    def __init__(
        self,
        axes: Optional[Union[int, Tuple[int, ...], List[int]]] = None,
        keepdims: bool = False,
    ) -> None:
        self.axes = _axes_tuple(axes)
        self.keepdims = keepdims

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a,) = args
        return Owned(np.asarray(np.sum(a, axis=self.axes, keepdims=self.keepdims)))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        (shape,) = shapes
        if shape is None:
            return None
        axes = range(len(shape)) if self.axes is None else self.axes
        reduced = {a % len(shape) for a in axes} if shape else set()
        if self.keepdims:
            return tuple(1 if i in reduced else d for i, d in enumerate(shape))
        return tuple(d for i, d in enumerate(shape) if i not in reduced)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        from revgraph.ops.ops_array import expand_dims, shape

        a = node.inputs[0]
        # 1. Restore the summed axes as unit axes so the gradient broadcasts.
        if not self.keepdims and self.axes is not None:
            out_grad = expand_dims(out_grad, self.axes)
        # 2. Broadcast it to the original input's shape.
        return BroadcastTo()(out_grad, shape(a))


def reduce_sum(
    a: "Tensor",
    axes: Optional[Union[int, Tuple[int, ...], List[int]]] = None,
    keepdims: bool = False,
) -> "Tensor":
    return ReduceSum(axes, keepdims)(a)


class BroadcastTo(TensorOp):
    """Broadcast a tensor to a runtime target shape (zero-copy)."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, target) = args
        target = tuple(int(d) for d in np.ravel(target))
        try:
            return View(np.broadcast_to(a, target))
        except ValueError as e:
            raise ComputeError(f"cannot broadcast {a.shape} to {target}") from e

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", None]:
        from revgraph.ops.ops_array import shape

        a = node.inputs[0]
        return ReduceSumToShape()(out_grad, shape(a)), None


def broadcast_to(a: "Tensor", target: Union["Tensor", Sequence[int]]) -> "Tensor":
    from revgraph.ops.ops_array import as_index_tensor

    return BroadcastTo()(a, as_index_tensor(target, a))


class ReduceSumToShape(TensorOp):
    """Sum a tensor down to a runtime target shape it was broadcast from."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, target) = args
        target = tuple(int(d) for d in np.ravel(target))
        if a.shape == target:
            return View(a)

        # 1. Sum away the leading axes that broadcasting added.
        ndim_diff = a.ndim - len(target)
        if ndim_diff < 0:
            raise ComputeError(f"cannot reduce {a.shape} to higher rank {target}")
        axes = list(range(ndim_diff))

        # 2. Sum, keeping the axis, every axis that was stretched from 1.
        for i, extent in enumerate(target):
            if extent == 1 and a.shape[i + ndim_diff] != 1:
                axes.append(i + ndim_diff)

        reduced = np.sum(a, axis=tuple(axes), keepdims=True)
        if reduced.shape[ndim_diff:] != target:
            raise ComputeError(f"cannot reduce {a.shape} to {target}")
        return Owned(reduced.reshape(target))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", None]:
        from revgraph.ops.ops_array import shape

        a = node.inputs[0]
        return BroadcastTo()(out_grad, shape(a)), None


def reduce_sum_to_shape(a: "Tensor", target: Union["Tensor", Sequence[int]]) -> "Tensor":
    from revgraph.ops.ops_array import as_index_tensor

    return ReduceSumToShape()(a, as_index_tensor(target, a))
