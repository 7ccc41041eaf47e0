"""
revgraph (reverse-mode graph autodiff)

Build a computation graph by composing operators, evaluate it with numpy
arrays, and differentiate it into new graph nodes.
"""

from importlib.metadata import PackageNotFoundError as _PkgNotFoundError
from importlib.metadata import version as _pkg_version

from . import config
from . import ops
from .autograd import (
    Graph,
    Node,
    Tensor,
    compute_gradient_of_variables,
    default_graph,
    find_topo_sort,
    gradients,
    reset_default_graph,
)
from .errors import (
    ComputeError,
    EvaluationError,
    GraphError,
    PreconditionViolation,
    RevgraphError,
)
from .evaluator import Evaluator, evaluate
from . import init
from .ops import (
    add_n,
    clip,
    concat,
    constant,
    elu,
    exp,
    expand_dims,
    gather,
    identity,
    index,
    log,
    placeholder,
    reduce_sum,
    relu,
    reshape,
    sigmoid,
    softmax,
    softplus,
    split,
    squeeze,
    strided_slice,
    tile,
)

__all__ = [
    "__version__",
    "config",
    "ops",
    "init",
    "Graph",
    "Node",
    "Tensor",
    "default_graph",
    "reset_default_graph",
    "compute_gradient_of_variables",
    "gradients",
    "find_topo_sort",
    "Evaluator",
    "evaluate",
    "RevgraphError",
    "ComputeError",
    "EvaluationError",
    "PreconditionViolation",
    "GraphError",
    "constant",
    "placeholder",
    "exp",
    "log",
    "reduce_sum",
    "softmax",
    "softplus",
    "sigmoid",
    "relu",
    "identity",
    "elu",
    "reshape",
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
]

try:
    __version__ = _pkg_version("revgraph")
except _PkgNotFoundError:
    # Fallback for editable installs before metadata is written
    __version__ = "0.1.0"
