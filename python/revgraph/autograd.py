"""Computation graph and reverse-mode gradient construction.

This module defines the node arena (`Graph`, `Node`), the user-facing
`Tensor` handle and the gradient builder. Nodes are a pure description of
the computation: they hold an operator, the ids of their inputs and an
optionally known static shape, never values. Values are materialized by
`revgraph.evaluator.Evaluator` in a cache that lives for one forward pass.

Differentiation is graph-to-graph: `compute_gradient_of_variables` walks the
graph in reverse topological order and asks each operator to splice new nodes
computing the partial gradients of its inputs.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Sequence, Set, Tuple, Union

import numpy as np

import revgraph.ops as ops
from revgraph.errors import GraphError
from revgraph.ops.op import StaticShape

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Node:
    """Immutable graph vertex: an operator applied to earlier nodes."""

    id: int
    op: ops.TensorOp
    inputs: Tuple[int, ...]
    shape: Optional[StaticShape]


class Graph:
    """Arena of nodes addressed by index.

    Inputs always refer to nodes created earlier, so the graph is a DAG by
    construction and a node may feed any number of consumers.
    """

    def __init__(self) -> None:
        self.nodes: List[Node] = []
        self._handles: List["Tensor"] = []
        # gradient nodes recorded by `Tensor.backward`, keyed by node id
        self.grads: Dict[int, "Tensor"] = {}

    def __len__(self) -> int:
        return len(self.nodes)

    def add_node(
        self, op: ops.TensorOp, inputs: Sequence[int], shape: Optional[StaticShape]
    ) -> "Tensor":
        """Append a node and return its handle."""
        for i in inputs:
            if not 0 <= i < len(self.nodes):
                raise GraphError(f"unknown input node {i} for {op.name()}")
        node = Node(len(self.nodes), op, tuple(inputs), shape)
        self.nodes.append(node)
        handle = Tensor._from_node(self, node.id)
        self._handles.append(handle)
        return handle

    def node(self, node_id: int) -> Node:
        return self.nodes[node_id]

    def tensor(self, node_id: int) -> "Tensor":
        """Return the (unique) handle of a node."""
        return self._handles[node_id]

    def consumers(self, node_id: int) -> List[int]:
        """Ids of the nodes that take `node_id` as an input."""
        return [n.id for n in self.nodes if node_id in n.inputs]

    def dump(self) -> str:
        """Human readable listing of the graph, one node per line."""
        lines = []
        for n in self.nodes:
            args = ", ".join(f"%{i}" for i in n.inputs)
            lines.append(f"%{n.id} = {n.op.name()}({args}) : {n.shape}")
        return "\n".join(lines)


_DEFAULT_GRAPH = Graph()


def default_graph() -> Graph:
    return _DEFAULT_GRAPH


def reset_default_graph() -> Graph:
    """Replace the default graph with an empty one and return it."""
    global _DEFAULT_GRAPH
    _DEFAULT_GRAPH = Graph()
    return _DEFAULT_GRAPH


class Tensor:
    """Handle on a graph node with arithmetic sugar.

    Notes
    -----
    - There is exactly one handle per node, so handles compare by identity.
    - `shape` is the static shape, `None` when it is only known at runtime.
    - Values are obtained with `numpy()` or `revgraph.evaluate`.
    """

    graph: Graph
    id: int

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        raise TypeError(
            "Tensors are created by operators; use revgraph.constant or "
            "revgraph.placeholder for leaves"
        )

    @staticmethod
    def _from_node(graph: Graph, node_id: int) -> "Tensor":
        tensor = Tensor.__new__(Tensor)
        tensor.graph = graph
        tensor.id = node_id
        return tensor

    @staticmethod
    def make_from_op(
        op: ops.TensorOp,
        inputs: Sequence["Tensor"],
        *,
        graph: Optional[Graph] = None,
    ) -> "Tensor":
        """Construct the node produced by `op` over the given input tensors."""
        for x in inputs:
            if not isinstance(x, Tensor):
                raise GraphError(
                    f"{op.name()} expects Tensor inputs, got {type(x).__name__}"
                )
        if inputs:
            graph = inputs[0].graph
            if any(x.graph is not graph for x in inputs):
                raise GraphError(f"inputs of {op.name()} belong to different graphs")
        elif graph is None:
            graph = default_graph()
        shape = op.infer_shape(*(x.shape for x in inputs))
        if shape is not None:
            shape = tuple(int(d) for d in shape)
        return graph.add_node(op, [x.id for x in inputs], shape)

    @property
    def node(self) -> Node:
        return self.graph.node(self.id)

    @property
    def op(self) -> ops.TensorOp:
        return self.node.op

    @property
    def inputs(self) -> Tuple["Tensor", ...]:
        return tuple(self.graph.tensor(i) for i in self.node.inputs)

    @property
    def shape(self) -> Optional[StaticShape]:
        """Statically known shape, or None."""
        return self.node.shape

    @property
    def ndim(self) -> Optional[int]:
        shape = self.shape
        return None if shape is None else len(shape)

    @property
    def grad(self) -> Optional["Tensor"]:
        """Gradient node recorded by the last `backward` call, if any."""
        return self.graph.grads.get(self.id)

    def is_leaf(self) -> bool:
        """Return True if this Tensor has no inputs."""
        return not self.node.inputs

    def __repr__(self) -> str:
        return f"revgraph.Tensor(%{self.id} = {self.op.name()}, shape={self.shape})"

    def numpy(self, feed_dict: Optional[Dict["Tensor", Any]] = None) -> np.ndarray:
        """Evaluate this tensor and return its value."""
        from revgraph.evaluator import Evaluator

        return Evaluator(self.graph).run([self], feed_dict)[0]

    def backward(self, out_grad: Optional["Tensor"] = None) -> None:
        """Build the gradient of this tensor w.r.t. every node it depends on.

        The resulting gradient nodes are reachable through `Tensor.grad`.
        """
        if out_grad is None:
            out_grad = ops.ones_like(self)
        grads = compute_gradient_of_variables(self, out_grad)
        self.graph.grads.update(grads)

    def __add__(self, other: Union["Tensor", float]) -> "Tensor":
        """Elementwise (broadcasting) addition, optionally with a scalar."""
        if isinstance(other, Tensor):
            return ops.EWiseAdd()(self, other)
        else:
            return ops.AddScalar(other)(self)

    def __sub__(self, other: Union["Tensor", float]) -> "Tensor":
        if isinstance(other, Tensor):
            return ops.EWiseSub()(self, other)
        else:
            return ops.AddScalar(-other)(self)

    def __rsub__(self, other: float) -> "Tensor":
        return ops.AddScalar(other)(ops.Negate()(self))

    def __mul__(self, other: Union["Tensor", float]) -> "Tensor":
        if isinstance(other, Tensor):
            return ops.EWiseMul()(self, other)
        else:
            return ops.MulScalar(other)(self)

    def __truediv__(self, other: Union["Tensor", float]) -> "Tensor":
        if isinstance(other, Tensor):
            return ops.EWiseDiv()(self, other)
        else:
            return ops.MulScalar(1.0 / other)(self)

    def __rtruediv__(self, other: float) -> "Tensor":
        return ops.MulScalar(other)(ops.PowerScalar(-1.0)(self))

    def __pow__(self, other: float) -> "Tensor":
        return ops.PowerScalar(other)(self)

    def __neg__(self) -> "Tensor":
        return ops.Negate()(self)

    def __getitem__(self, idxs: Union[int, slice, Tuple[Union[int, slice], ...]]) -> "Tensor":
        """Strided selection; integer indices keep their axis with extent 1."""
        return ops.strided_slice(self, idxs)

    def exp(self) -> "Tensor":
        return ops.Exp()(self)

    def log(self) -> "Tensor":
        return ops.Log()(self)

    def sum(
        self,
        axes: Optional[Union[int, Tuple[int, ...], List[int]]] = None,
        keepdims: bool = False,
    ) -> "Tensor":
        """Sum reduction over specified axes (or all axes if None)."""
        return ops.ReduceSum(axes, keepdims)(self)

    def reshape(self, shape: Union["Tensor", Sequence[int]]) -> "Tensor":
        """Reshape to `shape`; one extent may be -1."""
        return ops.reshape(self, shape)

    def broadcast_to(self, shape: Union["Tensor", Sequence[int]]) -> "Tensor":
        return ops.broadcast_to(self, shape)

    __radd__ = __add__
    __rmul__ = __mul__


def compute_gradient_of_variables(
    output_tensor: Union[Tensor, Sequence[Tensor]],
    out_grad: Union[Tensor, Sequence[Tensor]],
) -> Dict[int, Tensor]:
    """Build gradient nodes of `output_tensor` w.r.t. every node it depends on.

    Returns a map from node id to the node holding that node's gradient.
    Nodes whose gradient is not defined (every path to them crosses a
    non-differentiable input) are absent from the map.
    """
    outputs = _as_list(output_tensor)
    seeds = _as_list(out_grad)
    if len(outputs) != len(seeds):
        raise GraphError(f"{len(outputs)} outputs but {len(seeds)} seed gradients")

    # A map from node to a list of gradient contributions from each consumer
    node_to_output_grads_list: Dict[int, List[Tensor]] = {}
    for output, seed in zip(outputs, seeds):
        node_to_output_grads_list.setdefault(output.id, []).append(seed)

    # Traverse graph in reverse topological order given the output nodes that we
    # are taking gradient of. Nodes created below are not part of this order.
    reverse_topo_order = list(reversed(find_topo_sort(outputs)))

    node_to_grad: Dict[int, Tensor] = {}
    for node in reverse_topo_order:
        output_grads = node_to_output_grads_list.get(node.id)
        if not output_grads:
            continue
        grad = sum_node_list(output_grads)
        node_to_grad[node.id] = grad

        if node.is_leaf():
            continue

        input_grads = node.op.gradient_as_tuple(grad, node)
        for input_node, input_grad in zip(node.inputs, input_grads):
            if input_grad is None:
                continue
            node_to_output_grads_list.setdefault(input_node.id, []).append(input_grad)

    logger.debug(
        "built gradients of %d node(s): visited %d, graph now has %d nodes",
        len(outputs),
        len(reverse_topo_order),
        len(outputs[0].graph) if outputs else 0,
    )
    return node_to_grad


def gradients(
    ys: Union[Tensor, Sequence[Tensor]],
    xs: Union[Tensor, Sequence[Tensor]],
    seeds: Optional[Union[Tensor, Sequence[Tensor]]] = None,
) -> List[Optional[Tensor]]:
    """Return d(sum of ys)/dx for each x in `xs`, as graph nodes.

    `seeds` default to all-ones arrays shaped like each y. An x that does not
    influence any y through a differentiable path gets None.
    """
    ys = _as_list(ys)
    if seeds is None:
        seeds = [ops.ones_like(y) for y in ys]
    node_to_grad = compute_gradient_of_variables(ys, seeds)
    return [node_to_grad.get(x.id) for x in _as_list(xs)]


def find_topo_sort(node_list: List[Tensor]) -> List[Tensor]:
    """Given a list of nodes, return a topological sort list of nodes ending in them.

    A post-order DFS traversal on the given nodes, going backwards along input
    edges. A node is added to the ordering after all its predecessors, which
    yields a topological sort.
    """
    visited: Set[int] = set()
    topo_order: List[Tensor] = []
    for node in node_list:
        if node.id not in visited:
            topo_sort_dfs(node, visited, topo_order)
    return topo_order


def topo_sort_dfs(node: Tensor, visited: Set[int], topo_order: List[Tensor]) -> None:
    """Post-order DFS with an explicit stack, so deep graphs do not hit the
    recursion limit."""
    graph = node.graph
    visited.add(node.id)
    stack: List[Tuple[int, Iterable[int]]] = [(node.id, iter(graph.node(node.id).inputs))]
    while stack:
        current, preds = stack[-1]
        for pred in preds:
            if pred not in visited:
                visited.add(pred)
                stack.append((pred, iter(graph.node(pred).inputs)))
                break
        else:
            stack.pop()
            topo_order.append(graph.tensor(current))


##############################
####### Helper Methods #######
##############################


def sum_node_list(node_list: List[Tensor]) -> Tensor:
    """Sum gradient contributions with a single AddN node."""
    if len(node_list) == 1:
        return node_list[0]
    return ops.add_n(node_list)


def _as_list(value: Union[Tensor, Sequence[Tensor]]) -> List[Tensor]:
    if isinstance(value, Tensor):
        return [value]
    return list(value)
