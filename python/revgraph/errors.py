"""Exception hierarchy.

Two tiers of failure are distinguished:

- `ComputeError` is a recoverable, data-dependent failure raised from an
  operator's `compute` (incompatible concatenation shapes, a reshape target
  that does not divide the element count, a malformed slice specification).
  The evaluator catches it and re-raises an `EvaluationError` that names the
  operator and the shapes involved.
- `PreconditionViolation` signals a graph-construction bug (an index out of
  range, squeezing a non-unit axis, a node whose computed shape disagrees
  with its declared shape). It is never caught by the library.
"""

from typing import Optional, Sequence


class RevgraphError(Exception):
    """Base class for all errors raised by revgraph."""


class ComputeError(RevgraphError):
    """Recoverable failure of an operator's forward computation."""


class EvaluationError(ComputeError):
    """A `ComputeError` annotated with the node that produced it."""

    def __init__(
        self,
        message: str,
        *,
        op_name: Optional[str] = None,
        node_id: Optional[int] = None,
        input_shapes: Sequence[tuple[int, ...]] = (),
    ) -> None:
        self.op_name = op_name
        self.node_id = node_id
        self.input_shapes = tuple(input_shapes)
        if op_name is not None:
            shapes = ", ".join(str(s) for s in self.input_shapes)
            message = f"{op_name} (node {node_id}) failed on inputs [{shapes}]: {message}"
        super().__init__(message)


class PreconditionViolation(RevgraphError):
    """Unrecoverable violation of an operator precondition."""


class GraphError(RevgraphError, ValueError):
    """Invalid graph construction."""
