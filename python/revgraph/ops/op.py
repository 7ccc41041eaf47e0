"""Operator base class for Tensor-producing ops.

An op defines three contracts:
  - compute(*ndarrays) -> ArrayValue | ndarray  : forward pass on realized arrays
  - gradient(out_grad, node) -> Tensor | tuple[Tensor | None, ...]  : adjoints
  - infer_shape(*shapes) -> shape | None         : static output shape

`TensorOp` implements `__call__` to append a node to the graph of its inputs
and delegates execution and gradients to subclasses. `gradient` only builds
graph; it never evaluates anything numerically.
"""

from dataclasses import dataclass
from typing import TYPE_CHECKING, ClassVar, Optional, Tuple, Union

import numpy as np

from revgraph.errors import PreconditionViolation

if TYPE_CHECKING:
    from revgraph.autograd import Tensor

StaticShape = Tuple[int, ...]


@dataclass(frozen=True, eq=False)
class ArrayValue:
    """Result of `TensorOp.compute`: an array tagged with its ownership."""

    array: np.ndarray
    is_view: ClassVar[bool] = False

    def __post_init__(self) -> None:
        # arithmetic on 0-d arrays yields numpy scalars, which carry no flags
        object.__setattr__(self, "array", np.asarray(self.array))


@dataclass(frozen=True, eq=False)
class Owned(ArrayValue):
    """Freshly allocated array, exclusively held by its producer."""


@dataclass(frozen=True, eq=False)
class View(ArrayValue):
    """Non-owning window into an input's storage; never mutated."""

    is_view: ClassVar[bool] = True


def as_array_value(result: Union[ArrayValue, np.ndarray, float]) -> ArrayValue:
    """Wrap a bare compute result as `Owned`."""
    if isinstance(result, ArrayValue):
        return result
    return Owned(np.asarray(result))


class TensorOp:
    """Operator that produces a Tensor output and defines compute/gradient.

    Subclasses carry only the parameters needed to replay their computation
    (an axis, a threshold, a slice specification).
    """

    def __call__(self, *args: "Tensor") -> "Tensor":
        """Create a Tensor graph node by applying this op to input tensors."""
        from revgraph.autograd import Tensor  # lazy to avoid circular import

        return Tensor.make_from_op(self, args)

    def name(self) -> str:
        """Stable identifier used in error messages and graph dumps."""
        return type(self).__name__

    def compute(self, *args: np.ndarray) -> Union[ArrayValue, np.ndarray]:
        """Calculate the forward pass on realized arrays.

        Parameters
        ----------
        args: tuple of numpy.ndarray
            The realized, read-only input arrays.

        Returns
        -------
        output: ArrayValue or numpy.ndarray
            `Owned` for freshly allocated results, `View` for results
            aliasing an input. A bare ndarray is treated as `Owned`.

        Raises
        ------
        ComputeError
            On a recoverable, data-dependent failure.
        PreconditionViolation
            When the inputs break an invariant the graph should guarantee.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    def gradient(
        self, out_grad: "Tensor", node: "Tensor"
    ) -> Union["Tensor", Tuple[Optional["Tensor"], ...]]:
        """Return adjoint(s) for each input, given output adjoint `out_grad`.

        `node` is the output of this op; its inputs are `node.inputs`. An input
        that is not differentiable gets `None`.
        """
        raise NotImplementedError("Subclasses must implement this method.")

    def gradient_as_tuple(
        self, out_grad: "Tensor", node: "Tensor"
    ) -> Tuple[Optional["Tensor"], ...]:
        """Always return a tuple with one slot per input of `node`."""
        output = self.gradient(out_grad, node)
        if not isinstance(output, tuple):
            output = (output,)
        if len(output) != len(node.inputs):
            raise PreconditionViolation(
                f"{self.name()} returned {len(output)} gradients "
                f"for {len(node.inputs)} inputs"
            )
        return output

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        """Statically known output shape, or None when it depends on values."""
        return None

    def __repr__(self) -> str:
        params = ", ".join(f"{k}={v!r}" for k, v in vars(self).items())
        return f"{self.name()}({params})"


class NonDifferentiableOp(TensorOp):
    """Op whose output carries no gradient back to any of its inputs."""

    def gradient(
        self, out_grad: "Tensor", node: "Tensor"
    ) -> Tuple[Optional["Tensor"], ...]:
        return (None,) * len(node.inputs)


class ElementwiseOp(TensorOp):
    """Unary op whose output has the shape of its first input."""

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return shapes[0]
