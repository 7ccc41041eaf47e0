import logging

import numpy as np
import pytest

import revgraph as rg
from revgraph import config, ops
from revgraph.errors import ComputeError, EvaluationError, GraphError, PreconditionViolation


def test_feed_placeholders():
    x = rg.placeholder((2,))
    y = x * 3.0 + 1.0
    np.testing.assert_allclose(rg.evaluate(y, {x: np.array([1.0, 2.0])}), [4.0, 7.0])
    np.testing.assert_allclose(rg.evaluate(y, {x: np.array([0.0, -1.0])}), [1.0, -2.0])


def test_evaluate_list_of_fetches():
    x = rg.placeholder()
    a, b = rg.evaluate([x + 1.0, x * 2.0], {x: np.arange(3.0)})
    np.testing.assert_allclose(a, [1.0, 2.0, 3.0])
    np.testing.assert_allclose(b, [0.0, 2.0, 4.0])


def test_python_values_take_the_default_dtype():
    x = rg.placeholder()
    assert rg.evaluate(x * 1.0, {x: [1.0, 2.0]}).dtype == config.default_dtype()
    assert rg.constant(2.5).numpy().dtype == config.default_dtype()


def test_placeholder_dtype_is_applied():
    x = rg.placeholder(dtype=np.float64)
    assert rg.evaluate(x, {x: [1, 2]}).dtype == np.float64


def test_missing_feed_is_an_evaluation_error():
    x = rg.placeholder((2,))
    y = x + 1.0
    with pytest.raises(EvaluationError) as excinfo:
        y.numpy()
    assert excinfo.value.op_name == "Placeholder"
    assert excinfo.value.node_id == x.id


def test_feed_shape_mismatch():
    x = rg.placeholder((2,))
    with pytest.raises(ComputeError):
        rg.evaluate(x, {x: np.zeros(3)})


def test_only_placeholders_can_be_fed():
    c = rg.constant(1.0)
    with pytest.raises(GraphError):
        rg.evaluate(c, {c: 2.0})


def test_fetch_from_another_graph():
    other = rg.Graph()
    x = rg.constant(1.0, graph=other)
    with pytest.raises(GraphError):
        rg.Evaluator(rg.default_graph()).run([x])


def test_evaluation_error_names_the_operator(caplog):
    a = rg.placeholder()
    b = rg.placeholder()
    y = ops.concat([a, b], axis=1)
    with caplog.at_level(logging.ERROR, logger="revgraph"):
        with pytest.raises(EvaluationError) as excinfo:
            y.numpy({a: np.zeros((2, 2)), b: np.zeros((3, 2))})
    err = excinfo.value
    assert err.op_name == "Concat"
    assert err.node_id == y.id
    assert err.input_shapes == ((2, 2), (3, 2))
    assert "Concat" in str(err) and "(2, 2)" in str(err)
    assert "Concat" in caplog.text


def test_debug_logging_per_node(caplog):
    x = rg.constant(np.ones(2))
    with caplog.at_level(logging.DEBUG, logger="revgraph"):
        (x * 2.0).numpy()
    assert "MulScalar" in caplog.text


def test_fed_arrays_are_not_modified():
    x = rg.placeholder()
    value = np.arange(4.0)
    result = rg.evaluate(ops.identity(x), {x: value})
    assert value.flags.writeable
    assert not np.shares_memory(result, value)
    result[0] = 100.0
    assert value[0] == 0.0


def test_views_are_copied_at_the_boundary():
    c = rg.constant(np.arange(6.0))
    sliced = c[1:4]
    result = sliced.numpy()
    assert result.flags.writeable
    result[:] = -1.0
    np.testing.assert_array_equal(sliced.numpy(), [1.0, 2.0, 3.0])
    np.testing.assert_array_equal(c.numpy(), np.arange(6.0))


def test_owned_results_are_handed_over():
    x = rg.constant(np.arange(3.0))
    y = x * 2.0
    a, b = rg.evaluate([y, y])
    assert a.flags.writeable and b.flags.writeable
    a[0] = 7.0
    assert b[0] == 0.0


def test_inputs_are_read_only_during_compute():
    class _Mutating(ops.ElementwiseOp):
        def compute(self, *args):
            (x,) = args
            x += 1.0
            return x

    x = rg.constant(np.zeros(2))
    with pytest.raises(ValueError, match="read-only"):
        _Mutating()(x).numpy()


def test_bare_array_result_is_owned():
    class _Double(ops.ElementwiseOp):
        def compute(self, *args):
            return args[0] * 2

    x = rg.constant(np.ones(2))
    np.testing.assert_array_equal(_Double()(x).numpy(), [2.0, 2.0])


def test_declared_shape_is_checked():
    class _WrongShape(ops.ElementwiseOp):
        def compute(self, *args):
            return np.zeros(5)

    y = _WrongShape()(rg.constant(np.zeros(2)))
    with pytest.raises(PreconditionViolation):
        y.numpy()
    config.set_check_shapes(False)
    try:
        assert y.numpy().shape == (5,)
    finally:
        config.set_check_shapes(True)


def test_only_needed_nodes_are_evaluated():
    x = rg.placeholder()
    unused = x + 1.0
    c = rg.constant(np.ones(2))
    # x is never fed, and is not needed for c * 2
    np.testing.assert_array_equal((c * 2.0).numpy(), [2.0, 2.0])
    assert unused.id != c.id


@pytest.mark.parametrize(
    "build, expected",
    [
        (lambda: rg.constant(2.0) * 3.0, 6.0),
        (lambda: rg.constant(2.0) + rg.constant(1.0), 3.0),
        (lambda: ops.sigmoid(ops.index(rg.constant(np.array([1.0, 0.0])), -1)), 0.5),
        (lambda: ops.exp(rg.constant(0.0)) - 1.0, 0.0),
    ],
    ids=["mul_scalar", "add", "sigmoid_of_index", "exp"],
)
def test_scalar_graphs(build, expected):
    value = build().numpy()
    assert isinstance(value, np.ndarray)
    assert value.shape == ()
    np.testing.assert_allclose(value, expected, atol=1e-6)


def test_scalar_results_are_wrapped_as_arrays():
    value = ops.Owned(np.float64(3.0))
    assert isinstance(value.array, np.ndarray)
    assert value.array.shape == ()
    value.array.flags.writeable = False
