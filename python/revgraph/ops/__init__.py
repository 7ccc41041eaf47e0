"""Operator catalogue: the operator contract and every primitive built on it."""

from .op import (
    ArrayValue,
    ElementwiseOp,
    NonDifferentiableOp,
    Owned,
    StaticShape,
    TensorOp,
    View,
    as_array_value,
)
from .ops_mathematic import (
    AddScalar,
    BinaryOp,
    BroadcastTo,
    Constant,
    EWiseAdd,
    EWiseDiv,
    EWiseMul,
    EWiseSub,
    Exp,
    Greater,
    GreaterScalar,
    Log,
    MulScalar,
    Negate,
    OnesLike,
    Placeholder,
    PowerScalar,
    ReduceSum,
    ReduceSumToShape,
    ZerosLike,
    add,
    broadcast_to,
    constant,
    divide,
    exp,
    greater,
    log,
    multiply,
    ones_like,
    placeholder,
    reduce_sum,
    reduce_sum_to_shape,
    subtract,
    zeros_like,
)
from .ops_activation import (
    ELU,
    ELUGrad,
    Identity,
    ReLU,
    Sigmoid,
    Softmax,
    Softplus,
    elu,
    identity,
    relu,
    sigmoid,
    softmax,
    softmax_forward,
    softplus,
)
from .ops_array import (
    AddN,
    Clip,
    ClipGrad,
    Concat,
    ConcatGrad,
    ExpandDims,
    Gather,
    GatherGrad,
    IndexOp,
    IndexOpGrad,
    InferBinOpShape,
    Rank,
    Reshape,
    SetDiff1D,
    Shape,
    Size,
    Slice,
    SliceGrad,
    Split,
    SplitGrad,
    Squeeze,
    Tile,
    TileGrad,
    add_n,
    as_index_tensor,
    clip,
    concat,
    expand_dims,
    gather,
    index,
    infer_bin_op_shape,
    normalize_axis,
    rank,
    reshape,
    setdiff1d,
    shape,
    size,
    split,
    squeeze,
    strided_slice,
    tile,
)

__all__ = [
    # contract
    "TensorOp",
    "NonDifferentiableOp",
    "ElementwiseOp",
    "ArrayValue",
    "Owned",
    "View",
    "StaticShape",
    "as_array_value",
    # leaves
    "Placeholder",
    "Constant",
    "OnesLike",
    "ZerosLike",
    "placeholder",
    "constant",
    "ones_like",
    "zeros_like",
    # arithmetic
    "BinaryOp",
    "EWiseAdd",
    "EWiseSub",
    "EWiseMul",
    "EWiseDiv",
    "Greater",
    "GreaterScalar",
    "AddScalar",
    "MulScalar",
    "PowerScalar",
    "Negate",
    "Exp",
    "Log",
    "ReduceSum",
    "BroadcastTo",
    "ReduceSumToShape",
    "add",
    "subtract",
    "multiply",
    "divide",
    "greater",
    "exp",
    "log",
    "reduce_sum",
    "broadcast_to",
    "reduce_sum_to_shape",
    # activations
    "Softmax",
    "Softplus",
    "Sigmoid",
    "ReLU",
    "Identity",
    "ELU",
    "ELUGrad",
    "softmax_forward",
    "softmax",
    "softplus",
    "sigmoid",
    "relu",
    "identity",
    "elu",
    # array manipulation
    "Shape",
    "Rank",
    "Size",
    "InferBinOpShape",
    "Reshape",
    "SetDiff1D",
    "ExpandDims",
    "Squeeze",
    "Slice",
    "SliceGrad",
    "Split",
    "SplitGrad",
    "Tile",
    "TileGrad",
    "Concat",
    "ConcatGrad",
    "Clip",
    "ClipGrad",
    "AddN",
    "Gather",
    "GatherGrad",
    "IndexOp",
    "IndexOpGrad",
    "shape",
    "rank",
    "size",
    "infer_bin_op_shape",
    "reshape",
    "setdiff1d",
    "expand_dims",
    "squeeze",
    "strided_slice",
    "split",
    "tile",
    "concat",
    "clip",
    "add_n",
    "gather",
    "index",
    "normalize_axis",
    "as_index_tensor",
]
