"""Activation functions.

Gradients are expressed by composing existing operators, except for ELU whose
piecewise derivative needs the original input and gets a dedicated `ELUGrad`
operator.
"""

from typing import TYPE_CHECKING, Optional, Tuple

import numpy as np

from revgraph.ops.op import ArrayValue, ElementwiseOp, Owned, StaticShape, View
from revgraph.ops.ops_array import Clip
from revgraph.ops.ops_mathematic import Exp, GreaterScalar, ReduceSum

if TYPE_CHECKING:
    from revgraph.autograd import Tensor


def _float_dtype(x: np.ndarray) -> np.dtype:
    # float inputs keep their precision, integer inputs are promoted
    return np.result_type(x.dtype, np.float32)


def softmax_forward(x: np.ndarray, axis: int) -> np.ndarray:
    """Numerically stable softmax of `x` along `axis`."""
    # subtract the max to prevent overflow
    shifted = x - np.max(x, axis=axis, keepdims=True)
    tmp = np.exp(shifted)
    tmp /= np.sum(tmp, axis=axis, keepdims=True)
    return tmp


class Softmax(ElementwiseOp):
    def __init__(self, axis: int = -1) -> None:
        self.axis = axis

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return Owned(softmax_forward(x, self.axis))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        # dx = (dy - sum(y * dy)) * y
        total = ReduceSum((self.axis,), keepdims=True)(node * out_grad)
        return (out_grad - total) * node


def softmax(x: "Tensor", axis: int = -1) -> "Tensor":
    return Softmax(axis)(x)


class Softplus(ElementwiseOp):
    """ln(1 + e^x)."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return Owned(np.logaddexp(0, x).astype(_float_dtype(x), copy=False))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        # e^x / (1 + e^x), i.e. the logistic function of x
        return out_grad * Sigmoid()(node.inputs[0])


def softplus(x: "Tensor") -> "Tensor":
    return Softplus()(x)


class Sigmoid(ElementwiseOp):
    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        # 0.5 * tanh(0.5 * x) + 0.5 does not overflow for very negative x
        return Owned(np.tanh(x * 0.5) * 0.5 + 0.5)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return out_grad * (node - node**2)


def sigmoid(x: "Tensor") -> "Tensor":
    return Sigmoid()(x)


class ReLU(ElementwiseOp):
    """Rectified Linear Unit: max(x, 0)."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return Owned(np.maximum(x, 0))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        # the sub-gradient at exactly 0 is 0
        return GreaterScalar(0)(node.inputs[0]) * out_grad


def relu(x: "Tensor") -> "Tensor":
    return ReLU()(x)


class Identity(ElementwiseOp):
    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return View(x)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return out_grad


def identity(x: "Tensor") -> "Tensor":
    return Identity()(x)


def _elu_slope(x: np.ndarray, alpha: float) -> np.ndarray:
    # np.minimum keeps expm1 from overflowing on the branch np.where discards
    return np.where(x > 0, 1, alpha * np.expm1(np.minimum(x, 0)) + alpha)


class ELU(ElementwiseOp):
    """x for x > 0, alpha * (e^x - 1) otherwise."""

    def __init__(self, alpha: float = 1.0) -> None:
        self.alpha = alpha

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        y = np.where(x > 0, x, self.alpha * np.expm1(np.minimum(x, 0)))
        return Owned(y.astype(_float_dtype(x), copy=False))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return ELUGrad(self.alpha)(node.inputs[0], out_grad)


def elu(x: "Tensor", alpha: float = 1.0) -> "Tensor":
    return ELU(alpha)(x)


class ELUGrad(ElementwiseOp):
    """Inputs: [x, dy]. Outputs dy scaled by the ELU slope at x.

    The slope is alpha * e^x for x <= 0 and constant above, so the gradient
    w.r.t. x is alpha * e^x * dy on the negative side and zero elsewhere.
    """

    def __init__(self, alpha: float = 1.0) -> None:
        self.alpha = alpha

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, gy) = args
        return Owned((_elu_slope(x, self.alpha) * gy).astype(_float_dtype(gy), copy=False))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return shapes[1]

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", "Tensor"]:
        x, gy = node.inputs
        # clipping keeps exp finite on the positive side, where the mask is 0
        curvature = Exp()(Clip(-np.inf, 0.0)(x)) * self.alpha
        negative = 1.0 - GreaterScalar(0)(x)
        return out_grad * gy * curvature * negative, ELUGrad(self.alpha)(x, out_grad)
