"""Array and shape operators.

Operators whose semantics is a pure reindexing (Slice, Split, Squeeze,
ExpandDims, Reshape of a contiguous array, ConcatGrad) return a `View` of
their input instead of copying it. Their gradients scatter the incoming
gradient back into a zero-filled array of the original shape, through a
dedicated `*Grad` operator.

Shape-like arrays (the output of `Shape`, a `Reshape` target, the axes of
`ExpandDims`/`Squeeze`) are int64.
"""

import math
from typing import TYPE_CHECKING, Any, List, Optional, Sequence, Tuple, Union

import numpy as np

from revgraph.errors import ComputeError, GraphError, PreconditionViolation
from revgraph.ops.op import (
    ArrayValue,
    ElementwiseOp,
    NonDifferentiableOp,
    Owned,
    StaticShape,
    TensorOp,
    View,
)
from revgraph.ops.ops_mathematic import BinaryOp, _reduce_to, constant

if TYPE_CHECKING:
    from revgraph.autograd import Tensor

SliceSpec = Tuple[Union[int, slice], ...]


##############################
###### Helper functions ######
##############################


def normalize_axis(axis: int, ndim: int) -> int:
    """Map a possibly negative axis into [0, ndim)."""
    normalized = axis + ndim if axis < 0 else axis
    if not 0 <= normalized < ndim:
        raise PreconditionViolation(f"axis {axis} is out of range for rank {ndim}")
    return normalized


def as_index_tensor(value: Union["Tensor", Sequence[int], int], like: "Tensor") -> "Tensor":
    """Return `value` as an int64 tensor living in the graph of `like`."""
    from revgraph.autograd import Tensor

    if isinstance(value, Tensor):
        return value
    return constant(np.asarray(value, dtype=np.int64), graph=like.graph)


def _shape_vector(a: np.ndarray) -> Tuple[int, ...]:
    return tuple(int(d) for d in np.ravel(a))


def _is_index(s: Any) -> bool:
    return isinstance(s, (int, np.integer)) and not isinstance(s, (bool, np.bool_))


def _as_slice_spec(indices: Union[int, slice, Sequence[Union[int, slice]]]) -> SliceSpec:
    if isinstance(indices, (slice, int, np.integer)):
        return (indices,)
    return tuple(indices)


def slice_key(spec: SliceSpec, shape: StaticShape) -> Tuple[slice, ...]:
    """Turn a slice specification into a basic-indexing key.

    An int keeps its axis with extent 1. Raises `ComputeError` for a malformed
    specification and `PreconditionViolation` for an out-of-range bound.
    """
    if len(spec) > len(shape):
        raise ComputeError(
            f"slice specification {spec} has more entries than rank {len(shape)}"
        )
    key = []
    for axis, (s, n) in enumerate(zip(spec, shape)):
        if isinstance(s, slice):
            if s.step == 0:
                raise ComputeError(f"slice step of axis {axis} is zero")
            for bound in (s.start, s.stop, s.step):
                if bound is not None and not _is_index(bound):
                    raise ComputeError(f"slice bound {bound!r} of axis {axis} is not an integer")
            for bound in (s.start, s.stop):
                if bound is not None and not -n <= bound <= n:
                    raise PreconditionViolation(
                        f"slice bound {bound} out of range for axis {axis} of extent {n}"
                    )
            key.append(s)
        elif _is_index(s):
            if not -n <= s < n:
                raise PreconditionViolation(
                    f"index {s} out of range for axis {axis} of extent {n}"
                )
            i = int(s) + n if s < 0 else int(s)
            key.append(slice(i, i + 1, 1))
        else:
            raise ComputeError(f"invalid slice entry {s!r} for axis {axis}")
    return tuple(key)


def _sliced_shape(key: Tuple[slice, ...], shape: StaticShape) -> StaticShape:
    head = tuple(len(range(*s.indices(n))) for s, n in zip(key, shape))
    return head + tuple(shape[len(key):])


def _split_key(ndim: int, axis: int, start: int, end: int) -> Tuple[slice, ...]:
    if axis < 0:
        axis += ndim
    if not 0 <= axis < ndim:
        raise PreconditionViolation("Wrong split axis")
    return tuple(slice(start, end) if i == axis else slice(None) for i in range(ndim))


def _axes_list(axes: np.ndarray) -> List[int]:
    return [int(a) for a in np.ravel(axes)]


def _normalize_axes(axes: List[int], ndim: int, what: str) -> List[int]:
    normalized = []
    for a in axes:
        n = a + ndim if a < 0 else a
        if not 0 <= n < ndim:
            raise PreconditionViolation(f"{what} axis {a} is out of range for rank {ndim}")
        normalized.append(n)
    if len(set(normalized)) != len(normalized):
        raise PreconditionViolation(f"repeated {what} axes {axes}")
    return sorted(normalized)


def _gather_indices(
    indices: np.ndarray, extent: int, normalize_negative_indices: bool
) -> np.ndarray:
    idx = np.asarray(indices).astype(np.intp)
    if normalize_negative_indices:
        idx = np.where(idx < 0, idx + extent, idx)
    if idx.size and (idx.min() < 0 or idx.max() >= extent):
        raise PreconditionViolation(
            f"gather index out of range for axis of extent {extent}: {idx.ravel().tolist()}"
        )
    return idx


##############################
#### Shape and metadata ######
##############################


class Shape(NonDifferentiableOp):
    """Per-axis extents of the input as a 1-d array."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return Owned(np.array(x.shape, dtype=np.int64))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        (x,) = shapes
        return None if x is None else (len(x),)


def shape(x: "Tensor") -> "Tensor":
    """Shape of `x` as a tensor.

    For the output of a broadcasting binary op the shape is inferred from the
    operands' shapes, so the op itself need not be evaluated.
    """
    if isinstance(x.op, BinaryOp):
        a, b = x.inputs
        return InferBinOpShape()(Shape()(a), Shape()(b))
    return Shape()(x)


class Rank(NonDifferentiableOp):
    """Number of dimensions of the input as a 0-d array."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return Owned(np.array(x.ndim, dtype=np.int64))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return ()


def rank(x: "Tensor") -> "Tensor":
    return Rank()(x)


class Size(NonDifferentiableOp):
    """Total number of elements of the input as a 0-d array."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return Owned(np.array(x.size, dtype=np.int64))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return ()


def size(x: "Tensor") -> "Tensor":
    return Size()(x)


def _is_scalar_shape(s: Tuple[int, ...]) -> bool:
    return len(s) == 0 or s == (1,)


class InferBinOpShape(NonDifferentiableOp):
    """Inputs: [shape_a, shape_b]. Output: the shape of a broadcasting binary op.

    The elementwise maximum of the two shapes when neither is a scalar shape,
    otherwise the non-scalar shape unchanged.
    """

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, b) = args
        a_shape = _shape_vector(a)
        b_shape = _shape_vector(b)
        a_is_scalar = _is_scalar_shape(a_shape)
        b_is_scalar = _is_scalar_shape(b_shape)

        if not a_is_scalar and not b_is_scalar:
            rank_ = max(len(a_shape), len(b_shape))
            a_shape = (1,) * (rank_ - len(a_shape)) + a_shape
            b_shape = (1,) * (rank_ - len(b_shape)) + b_shape
            return Owned(np.maximum(a_shape, b_shape).astype(np.int64))
        elif not a_is_scalar:
            return View(a)
        else:
            return View(b)


def infer_bin_op_shape(a_shape: "Tensor", b_shape: "Tensor") -> "Tensor":
    return InferBinOpShape()(a_shape, b_shape)


class Reshape(TensorOp):
    """Inputs: [x, target_shape]. One extent of the target may be -1.

    Returns a view when `x` is C-contiguous, otherwise reshapes a copy.
    """

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, target_arr) = args
        target = list(_shape_vector(target_arr))

        inferred = [i for i, d in enumerate(target) if d == -1]
        if len(inferred) > 1 or any(d < -1 for d in target):
            raise ComputeError(f"invalid reshape target {tuple(target)}")
        if inferred:
            product = math.prod(d for d in target if d != -1)
            if product == 0 or x.size % product != 0:
                raise ComputeError(
                    f"cannot reshape {x.shape} ({x.size} elements) to {tuple(target)}"
                )
            target[inferred[0]] = x.size // product
        elif math.prod(target) != x.size:
            raise ComputeError(
                f"cannot reshape {x.shape} ({x.size} elements) to {tuple(target)}"
            )

        if x.flags.c_contiguous:
            return View(x.reshape(target))
        # not contiguous: copying it first
        return Owned(np.ascontiguousarray(x).reshape(target))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", None]:
        x = node.inputs[0]
        return Reshape()(out_grad, shape(x)), None


def reshape(x: "Tensor", target: Union["Tensor", Sequence[int]]) -> "Tensor":
    return Reshape()(x, as_index_tensor(target, x))


class SetDiff1D(NonDifferentiableOp):
    """Sorted values of the first input that are absent from the second.

    Both inputs are read as sets of integers; duplicates collapse.
    """

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (a, b) = args
        diff = np.setdiff1d(
            np.ravel(a).astype(np.int64), np.ravel(b).astype(np.int64)
        )
        return Owned(diff.astype(a.dtype))


def setdiff1d(a: "Tensor", b: "Tensor") -> "Tensor":
    return SetDiff1D()(a, b)


class ExpandDims(TensorOp):
    """Inputs: [x, axes]. Inserts unit axes.

    Axes are positions in the output; negatives count from the output rank.
    They are inserted in ascending order, each relative to the shape produced
    by the previous insertions.
    """

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, axes) = args
        axes_ = _axes_list(axes)
        output_shape = list(x.shape)
        for axis in _normalize_axes(axes_, x.ndim + len(axes_), "expand_dims"):
            output_shape.insert(axis, 1)
        return View(x.reshape(output_shape))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", None]:
        return Squeeze()(out_grad, node.inputs[1]), None


def expand_dims(x: "Tensor", axes: Union["Tensor", int, Sequence[int]]) -> "Tensor":
    if isinstance(axes, (int, np.integer)):
        axes = [axes]
    return ExpandDims()(x, as_index_tensor(axes, x))


class Squeeze(TensorOp):
    """Inputs: [x, axes]. Removes unit axes, the inverse of ExpandDims."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, axes) = args
        result = x
        adjust = 0
        for axis in _normalize_axes(_axes_list(axes), x.ndim, "squeeze"):
            axis -= adjust
            if result.shape[axis] != 1:
                raise PreconditionViolation(
                    f"Can't squeeze axis {axis + adjust} of {x.shape}: its size != 1"
                )
            result = result[(slice(None),) * axis + (0,)]
            adjust += 1
        return View(result)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", None]:
        return ExpandDims()(out_grad, node.inputs[1]), None


def squeeze(x: "Tensor", axes: Union["Tensor", int, Sequence[int]]) -> "Tensor":
    if isinstance(axes, (int, np.integer)):
        axes = [axes]
    return Squeeze()(x, as_index_tensor(axes, x))


##############################
####### Slicing ##############
##############################


class Slice(TensorOp):
    """Strided sub-region, given one `slice` or int per leading axis."""

    def __init__(self, indices: SliceSpec) -> None:
        self.indices = _as_slice_spec(indices)

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return View(x[slice_key(self.indices, x.shape)])

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        (x,) = shapes
        if x is None:
            return None
        return _sliced_shape(slice_key(self.indices, x), x)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return SliceGrad(self.indices)(node.inputs[0], out_grad)


def strided_slice(
    x: "Tensor", indices: Union[int, slice, Sequence[Union[int, slice]]]
) -> "Tensor":
    return Slice(_as_slice_spec(indices))(x)


class SliceGrad(ElementwiseOp):
    """Inputs: [x, dy]. Scatters dy into zeros shaped like x."""

    def __init__(self, indices: SliceSpec) -> None:
        self.indices = _as_slice_spec(indices)

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, gy) = args
        gx = np.zeros(x.shape, dtype=gy.dtype)
        gx[slice_key(self.indices, x.shape)] = gy
        return Owned(gx)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple[None, "Tensor"]:
        return None, Slice(self.indices)(out_grad)


class Split(TensorOp):
    """Contiguous sub-range [start_index, end_index) of `axis`."""

    def __init__(self, axis: int, start_index: int, end_index: int) -> None:
        self.axis = axis
        self.start_index = start_index
        self.end_index = end_index

    def _key(self, ndim: int) -> Tuple[slice, ...]:
        return _split_key(ndim, self.axis, self.start_index, self.end_index)

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return View(x[self._key(x.ndim)])

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        (x,) = shapes
        if x is None:
            return None
        return _sliced_shape(self._key(len(x)), x)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        op = SplitGrad(self.axis, self.start_index, self.end_index)
        return op(node.inputs[0], out_grad)


def split(x: "Tensor", axis: int, start_index: int, end_index: int) -> "Tensor":
    return Split(axis, start_index, end_index)(x)


class SplitGrad(ElementwiseOp):
    """Inputs: [x, dy]. Scatters dy into zeros shaped like x."""

    def __init__(self, axis: int, start_index: int, end_index: int) -> None:
        self.axis = axis
        self.start_index = start_index
        self.end_index = end_index

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, gy) = args
        gx = np.zeros(x.shape, dtype=gy.dtype)
        gx[_split_key(x.ndim, self.axis, self.start_index, self.end_index)] = gy
        return Owned(gx)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple[None, "Tensor"]:
        return None, Split(self.axis, self.start_index, self.end_index)(out_grad)


##############################
#### Tile and concatenation ##
##############################


class Tile(TensorOp):
    """`num` copies of the input laid end to end along `axis`."""

    def __init__(self, axis: int, num: int) -> None:
        if num < 1:
            raise GraphError(f"Tile needs a positive number of copies, got {num}")
        self.axis = axis
        self.num = num

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        axis = normalize_axis(self.axis, x.ndim)
        return Owned(np.concatenate([x] * self.num, axis=axis))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        (x,) = shapes
        if x is None:
            return None
        axis = normalize_axis(self.axis, len(x))
        return x[:axis] + (x[axis] * self.num,) + x[axis + 1 :]

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        # the adjoint of replication is summation
        return TileGrad(self.axis, self.num)(out_grad)


def tile(x: "Tensor", axis: int, num: int) -> "Tensor":
    return Tile(axis, num)(x)


class TileGrad(TensorOp):
    """Sums the `num` equal blocks of dy along `axis`."""

    def __init__(self, axis: int, num: int) -> None:
        self.axis = axis
        self.num = num

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (gy,) = args
        axis = normalize_axis(self.axis, gy.ndim)
        extent, remainder = divmod(gy.shape[axis], self.num)
        if remainder:
            raise PreconditionViolation(
                f"axis {axis} of {gy.shape} is not a multiple of {self.num}"
            )
        blocks = gy.reshape(gy.shape[:axis] + (self.num, extent) + gy.shape[axis + 1 :])
        return Owned(blocks.sum(axis=axis))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        (gy,) = shapes
        if gy is None:
            return None
        axis = normalize_axis(self.axis, len(gy))
        return gy[:axis] + (gy[axis] // self.num,) + gy[axis + 1 :]

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return Tile(self.axis, self.num)(out_grad)


class Concat(TensorOp):
    """Joins the inputs along `axis`; other extents must agree."""

    def __init__(self, axis: int) -> None:
        self.axis = axis

    def compute(self, *args: np.ndarray) -> ArrayValue:
        if not args:
            raise PreconditionViolation("Concat needs at least one input")
        axis = normalize_axis(self.axis, args[0].ndim)
        try:
            return Owned(np.concatenate(args, axis=axis))
        except ValueError as e:
            shapes = [x.shape for x in args]
            raise ComputeError(
                f"Can't concat arrays whose shapes are incompatible: {shapes}"
            ) from e

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        if not shapes or any(s is None for s in shapes):
            return None
        first = shapes[0]
        axis = normalize_axis(self.axis, len(first))
        rest = [s[:axis] + s[axis + 1 :] for s in shapes]
        if any(len(s) != len(first) or r != rest[0] for s, r in zip(shapes, rest)):
            # incompatible; reported when computed
            return None
        return first[:axis] + (sum(s[axis] for s in shapes),) + first[axis + 1 :]

    def gradient(
        self, out_grad: "Tensor", node: "Tensor"
    ) -> Tuple[Optional["Tensor"], ...]:
        # [gy, x0, x1, ..., xn]
        merged_inputs = (out_grad,) + node.inputs
        return tuple(
            ConcatGrad(self.axis, i)(*merged_inputs) for i in range(len(node.inputs))
        )


def concat(xs: Sequence["Tensor"], axis: int) -> "Tensor":
    return Concat(axis)(*xs)


class ConcatGrad(NonDifferentiableOp):
    """Inputs: [dy, x0, ..., xn]. The region of dy that came from x_index."""

    def __init__(self, axis: int, index: int) -> None:
        self.axis = axis
        self.index = index

    def compute(self, *args: np.ndarray) -> ArrayValue:
        gy, xs = args[0], args[1:]
        axis = normalize_axis(self.axis, xs[0].ndim)

        # offset of the region: extents of all preceding inputs
        start = sum(x.shape[axis] for x in xs[: self.index])
        stop = start + xs[self.index].shape[axis]
        key = tuple(
            slice(start, stop) if i == axis else slice(None) for i in range(gy.ndim)
        )
        return View(gy[key])

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return shapes[1 + self.index]


##############################
###### Clip and AddN #########
##############################


class Clip(ElementwiseOp):
    def __init__(self, a_min: float, a_max: float) -> None:
        self.a_min = a_min
        self.a_max = a_max

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        return Owned(np.clip(x, self.a_min, self.a_max))

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return ClipGrad(self.a_min, self.a_max)(node.inputs[0], out_grad)


def clip(x: "Tensor", a_min: float, a_max: float) -> "Tensor":
    return Clip(a_min, a_max)(x)


class ClipGrad(ElementwiseOp):
    """Inputs: [x, dy]. Passes dy where a_min < x < a_max, zero elsewhere."""

    def __init__(self, a_min: float, a_max: float) -> None:
        self.a_min = a_min
        self.a_max = a_max

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, gy) = args
        inside = (x > self.a_min) & (x < self.a_max)
        return Owned(inside.astype(gy.dtype) * gy)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple[None, "Tensor"]:
        return None, ClipGrad(self.a_min, self.a_max)(node.inputs[0], out_grad)


class AddN(TensorOp):
    """Sum of one or more tensors."""

    def compute(self, *args: np.ndarray) -> ArrayValue:
        if not args:
            raise PreconditionViolation("AddN needs at least one input")
        if len(args) == 1:
            return View(args[0])
        try:
            result = args[0] + args[1]
            for x in args[2:]:
                result = result + x
        except ValueError as e:
            raise ComputeError(
                f"AddN operands do not broadcast: {[a.shape for a in args]}"
            ) from e
        return Owned(result)

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        if not shapes or any(s is None for s in shapes):
            return None
        try:
            return tuple(np.broadcast_shapes(*shapes))
        except ValueError:
            # reported when computed
            return None

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple["Tensor", ...]:
        return tuple(_reduce_to(out_grad, x) for x in node.inputs)


def add_n(xs: Sequence["Tensor"]) -> "Tensor":
    return AddN()(*xs)


##############################
###### Gather and index ######
##############################


class Gather(TensorOp):
    """Inputs: [indices, param]. Selects slices of `param` along `axis`.

    The output shape is param.shape[:axis] + indices.shape + param.shape[axis+1:].
    """

    def __init__(self, axis: int, normalize_negative_indices: bool = False) -> None:
        self.axis = axis
        self.normalize_negative_indices = normalize_negative_indices

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (indices, param) = args
        axis = normalize_axis(self.axis, param.ndim)
        idx = _gather_indices(indices, param.shape[axis], self.normalize_negative_indices)
        return Owned(np.take(param, idx, axis=axis))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        (indices, param) = shapes
        if indices is None or param is None:
            return None
        axis = normalize_axis(self.axis, len(param))
        return param[:axis] + indices + param[axis + 1 :]

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple[None, "Tensor"]:
        indices, param = node.inputs
        op = GatherGrad(self.axis, self.normalize_negative_indices)
        return None, op(indices, param, out_grad)


def gather(
    param: "Tensor",
    indices: Union["Tensor", Sequence[int]],
    axis: int,
    normalize_negative_indices: bool = False,
) -> "Tensor":
    return Gather(axis, normalize_negative_indices)(as_index_tensor(indices, param), param)


class GatherGrad(TensorOp):
    """Inputs: [indices, param, dy]. Accumulates dy into zeros shaped like param.

    An index selected several times receives the sum of its gradients.
    """

    def __init__(self, axis: int, normalize_negative_indices: bool = False) -> None:
        self.axis = axis
        self.normalize_negative_indices = normalize_negative_indices

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (indices, param, gy) = args
        axis = normalize_axis(self.axis, param.ndim)
        idx = _gather_indices(
            indices, param.shape[axis], self.normalize_negative_indices
        ).ravel()

        # gy laid out as param.shape[:axis] + (len(idx),) + param.shape[axis+1:]
        gy = gy.reshape(param.shape[:axis] + (idx.size,) + param.shape[axis + 1 :])
        gx = np.zeros(param.shape, dtype=gy.dtype)
        # accumulate, never overwrite: indices may repeat
        np.add.at(np.moveaxis(gx, axis, 0), idx, np.moveaxis(gy, axis, 0))
        return Owned(gx)

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return shapes[1]

    def gradient(
        self, out_grad: "Tensor", node: "Tensor"
    ) -> Tuple[None, None, "Tensor"]:
        indices = node.inputs[0]
        op = Gather(self.axis, self.normalize_negative_indices)
        return None, None, op(indices, out_grad)


def _flat_position(index: int, size: int) -> int:
    i = index + size if index < 0 else index
    if not 0 <= i < size:
        raise PreconditionViolation(f"Index {index} out of bounds for {size} elements")
    return i


class IndexOp(TensorOp):
    """Single element of the flattened input, as a 0-d array."""

    def __init__(self, index: int) -> None:
        self.index = index

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x,) = args
        i = _flat_position(self.index, x.size)
        return Owned(np.array(x.reshape(-1)[i]))

    def infer_shape(self, *shapes: Optional[StaticShape]) -> Optional[StaticShape]:
        return ()

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> "Tensor":
        return IndexOpGrad(self.index)(node.inputs[0], out_grad)


def index(x: "Tensor", i: int) -> "Tensor":
    return IndexOp(i)(x)


class IndexOpGrad(ElementwiseOp):
    """Inputs: [x, dy]. Zeros shaped like x with dy at the flat index."""

    def __init__(self, index: int) -> None:
        self.index = index

    def compute(self, *args: np.ndarray) -> ArrayValue:
        (x, gy) = args
        result = np.zeros(x.shape, dtype=gy.dtype)
        i = _flat_position(self.index, result.size)
        result.reshape(-1)[i] = np.asarray(gy).reshape(())
        return Owned(result)

    def gradient(self, out_grad: "Tensor", node: "Tensor") -> Tuple[None, "Tensor"]:
        return None, IndexOp(self.index)(out_grad)
