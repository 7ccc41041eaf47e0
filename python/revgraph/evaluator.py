"""Forward evaluation of a computation graph.

An `Evaluator` materializes the values of requested nodes. It walks the
nodes they depend on in topological order and keeps the computed arrays in
a cache keyed by node id that lives for a single `run` call.

Aliasing rules:
  - every cached array is frozen (not writeable) while the pass runs, so no
    operator can mutate an input or an array that a `View` refers to;
  - fed arrays are bound through read-only views, the caller's arrays are
    neither copied nor modified;
  - values handed back to the caller never alias evaluator storage: `View`
    results are copied, `Owned` results are released (made writeable).
"""

import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

import numpy as np

from revgraph import config
from revgraph.autograd import Graph, Tensor, default_graph, find_topo_sort
from revgraph.errors import ComputeError, EvaluationError, GraphError, PreconditionViolation
from revgraph.ops import ArrayValue, Owned, Placeholder, View, as_array_value

logger = logging.getLogger(__name__)

FeedDict = Mapping[Tensor, Any]


class Evaluator:
    """Evaluate nodes of one graph."""

    def __init__(self, graph: Optional[Graph] = None) -> None:
        self.graph = default_graph() if graph is None else graph

    def run(
        self,
        fetches: Union[Tensor, Sequence[Tensor]],
        feed_dict: Optional[FeedDict] = None,
    ) -> List[np.ndarray]:
        """Compute the value of every tensor in `fetches`.

        Parameters
        ----------
        fetches
            A tensor or a sequence of tensors of this graph.
        feed_dict
            Values of the placeholders the fetches depend on.

        Returns
        -------
        list of numpy.ndarray
            One array per fetch, owned by the caller.

        Raises
        ------
        EvaluationError
            When an operator fails on its inputs, or a placeholder is not fed.
        PreconditionViolation
            When an operator's preconditions do not hold.
        """
        fetch_list = [fetches] if isinstance(fetches, Tensor) else list(fetches)
        for t in fetch_list:
            self._check_tensor(t, "fetch")

        cache: Dict[int, ArrayValue] = self._bind_feeds(feed_dict or {})
        for tensor in find_topo_sort(fetch_list):
            if tensor.id not in cache:
                cache[tensor.id] = self._evaluate_node(tensor, cache)

        return self._release(fetch_list, cache)

    def _check_tensor(self, tensor: Any, what: str) -> None:
        if not isinstance(tensor, Tensor):
            raise GraphError(f"{what} must be a Tensor, got {type(tensor).__name__}")
        if tensor.graph is not self.graph:
            raise GraphError(f"{what} {tensor!r} belongs to another graph")

    def _bind_feeds(self, feed_dict: FeedDict) -> Dict[int, ArrayValue]:
        bound: Dict[int, ArrayValue] = {}
        for tensor, value in feed_dict.items():
            self._check_tensor(tensor, "feed key")
            op = tensor.op
            if not isinstance(op, Placeholder):
                raise GraphError(f"only placeholders can be fed, got {op.name()} node")

            array = _feed_array(value, op.dtype)
            if op.shape is not None and array.shape != op.shape:
                raise EvaluationError(
                    f"fed value of shape {array.shape} but the placeholder "
                    f"was declared with shape {op.shape}",
                    op_name=op.name(),
                    node_id=tensor.id,
                    input_shapes=[array.shape],
                )
            view = array.view()
            view.flags.writeable = False
            bound[tensor.id] = View(view)
        return bound

    def _evaluate_node(self, tensor: Tensor, cache: Dict[int, ArrayValue]) -> ArrayValue:
        node = tensor.node
        op = node.op
        inputs = [cache[i].array for i in node.inputs]
        logger.debug(
            "evaluating %%%d = %s(%s)",
            node.id,
            op.name(),
            ", ".join(str(x.shape) for x in inputs),
        )
        try:
            value = as_array_value(op.compute(*inputs))
        except ComputeError as e:
            logger.error("%s (node %d) failed: %s", op.name(), node.id, e)
            raise EvaluationError(
                str(e),
                op_name=op.name(),
                node_id=node.id,
                input_shapes=[x.shape for x in inputs],
            ) from e

        # an op returning one of its inputs as a bare array does not own it
        if not value.is_view and any(value.array is x for x in inputs):
            value = View(value.array)

        if config.check_shapes() and node.shape is not None:
            if value.array.shape != node.shape:
                raise PreconditionViolation(
                    f"{op.name()} (node {node.id}) computed shape {value.array.shape} "
                    f"but its declared shape is {node.shape}"
                )

        value.array.flags.writeable = False
        return value

    def _release(
        self, fetch_list: List[Tensor], cache: Dict[int, ArrayValue]
    ) -> List[np.ndarray]:
        results = []
        released = set()
        for tensor in fetch_list:
            value = cache[tensor.id]
            array = value.array
            if isinstance(value, Owned) and array.base is None and id(array) not in released:
                array.flags.writeable = True
                released.add(id(array))
                results.append(array)
            else:
                results.append(np.array(array))
        return results


def _feed_array(value: Any, dtype: Optional[np.dtype]) -> np.ndarray:
    if isinstance(value, Tensor):
        raise GraphError("a feed value must be an array, not a Tensor")
    array = np.asarray(value, dtype=dtype)
    if dtype is None and array.dtype.kind == "f" and not isinstance(value, np.ndarray):
        array = array.astype(config.default_dtype())
    return array


def evaluate(
    fetches: Union[Tensor, Sequence[Tensor]],
    feed_dict: Optional[FeedDict] = None,
) -> Union[np.ndarray, List[np.ndarray]]:
    """Evaluate `fetches` in the graph they belong to.

    A single tensor gives a single array, a sequence gives a list.
    """
    if isinstance(fetches, Tensor):
        return Evaluator(fetches.graph).run([fetches], feed_dict)[0]
    fetches = list(fetches)
    graph = fetches[0].graph if fetches else default_graph()
    return Evaluator(graph).run(fetches, feed_dict)
