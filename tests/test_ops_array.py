import numpy as np
import pytest

import revgraph as rg
from revgraph import ops
from revgraph.errors import ComputeError, EvaluationError, GraphError, PreconditionViolation

_A = np.arange(24, dtype=np.float64).reshape(2, 3, 4)


def test_shape_rank_size():
    x = rg.constant(_A)
    shape_, rank_, size_ = rg.evaluate([ops.shape(x), ops.rank(x), ops.size(x)])
    np.testing.assert_array_equal(shape_, [2, 3, 4])
    assert shape_.dtype == np.int64
    assert rank_.shape == () and rank_ == 3
    assert size_.shape == () and size_ == 24


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ([2, 3], [2, 1], [2, 3]),
        ([1], [4, 5], [4, 5]),
        ([], [4, 5], [4, 5]),
        ([4, 5], [], [4, 5]),
        ([3, 1, 5], [4, 1], [3, 4, 5]),
    ],
    ids=["same_rank", "unit_lhs", "scalar_lhs", "scalar_rhs", "left_pad"],
)
def test_infer_bin_op_shape(a, b, expected):
    a_t = rg.constant(np.array(a, dtype=np.int64))
    b_t = rg.constant(np.array(b, dtype=np.int64))
    np.testing.assert_array_equal(rg.evaluate(ops.infer_bin_op_shape(a_t, b_t)), expected)


def test_shape_of_binary_op_output_is_inferred():
    a = rg.placeholder((2, 1))
    b = rg.placeholder((1, 3))
    s = ops.shape(a + b)
    assert isinstance(s.op, ops.InferBinOpShape)
    feeds = {a: np.zeros((2, 1)), b: np.zeros((1, 3))}
    np.testing.assert_array_equal(rg.evaluate(s, feeds), [2, 3])


@pytest.mark.parametrize(
    "target, expected",
    [((4, 6), (4, 6)), ((-1, 8), (3, 8)), ((2, -1, 2), (2, 6, 2))],
    ids=["explicit", "inferred_first", "inferred_middle"],
)
def test_reshape_round_trip(target, expected, check_gradient):
    x = rg.constant(_A)
    y = ops.reshape(x, target)
    y_value = y.numpy()
    assert y_value.shape == expected
    back = ops.reshape(y, ops.shape(x))
    np.testing.assert_array_equal(back.numpy(), _A)
    check_gradient(lambda t: ops.reshape(t, target), _A)


@pytest.mark.parametrize(
    "target",
    [(5, 5), (-1, 5), (-1, -1), (0, -1)],
    ids=["bad_product", "not_divisible", "two_inferred", "zero_with_inferred"],
)
def test_reshape_errors_are_recoverable(target):
    y = ops.reshape(rg.constant(_A), target)
    with pytest.raises(EvaluationError) as excinfo:
        y.numpy()
    assert excinfo.value.op_name == "Reshape"
    assert isinstance(excinfo.value.__cause__, ComputeError)


def test_reshape_view_and_copy():
    x = np.arange(6.0).reshape(2, 3)
    target = np.array([3, 2], dtype=np.int64)
    assert ops.Reshape().compute(x, target).is_view
    value = ops.Reshape().compute(x.T, target)
    assert not value.is_view
    np.testing.assert_array_equal(value.array, x.T.reshape(3, 2))


@pytest.mark.parametrize(
    "axes, expanded",
    [(0, (1, 2, 3, 4)), (3, (2, 3, 4, 1)), (-1, (2, 3, 4, 1)), ([0, 2], (1, 2, 1, 3, 4))],
    ids=["front", "back", "negative", "two_axes"],
)
def test_expand_dims_squeeze_round_trip(axes, expanded, check_gradient):
    x = rg.constant(_A)
    y = ops.expand_dims(x, axes)
    assert y.numpy().shape == expanded
    np.testing.assert_array_equal(ops.squeeze(y, axes).numpy(), _A)
    check_gradient(lambda t: ops.expand_dims(t, axes), _A)


def test_squeeze_non_unit_axis_is_fatal():
    y = ops.squeeze(rg.constant(_A), 1)
    with pytest.raises(PreconditionViolation):
        y.numpy()


def test_squeeze_repeated_axis_is_fatal():
    y = ops.squeeze(rg.constant(np.zeros((1, 3))), [0, 0])
    with pytest.raises(PreconditionViolation):
        y.numpy()


def test_slice_keeps_rank_for_int_index(check_gradient):
    x = rg.constant(_A)
    y = x[1, 0:3:2]
    assert y.shape == (1, 2, 4)
    np.testing.assert_array_equal(y.numpy(), _A[1:2, 0:3:2])
    check_gradient(lambda t: t[1, 0:3:2], _A)
    check_gradient(lambda t: t[:, ::-1, 1:], _A)


def test_slice_returns_view():
    x = np.arange(10.0)
    value = ops.Slice((slice(2, 5),)).compute(x)
    assert value.is_view
    assert np.shares_memory(value.array, x)


def test_slice_malformed_spec_is_recoverable():
    x = rg.placeholder()
    y = ops.strided_slice(x, (slice(0, 1), slice(0, 1), slice(0, 1)))
    with pytest.raises(EvaluationError):
        y.numpy({x: np.zeros((2, 2))})


def test_slice_out_of_range_is_fatal():
    with pytest.raises(PreconditionViolation):
        rg.constant(np.zeros(3))[5]


def test_slice_gradient_is_differentiable_in_its_seed(check_gradient):
    x = rg.constant(_A)

    def input_gradient(seed):
        (gx,) = rg.gradients(x[0, 1:], [x], seeds=[seed])
        return gx

    check_gradient(input_gradient, np.ones((1, 2, 4)))


def test_concat_split_inverse(check_gradient):
    a = np.arange(6.0).reshape(2, 3)
    b = np.arange(8.0).reshape(2, 4)
    c = np.arange(2.0).reshape(2, 1)
    joined = ops.concat([rg.constant(a), rg.constant(b), rg.constant(c)], axis=1)
    assert joined.shape == (2, 8)
    parts = [ops.split(joined, 1, 0, 3), ops.split(joined, -1, 3, 7), ops.split(joined, 1, 7, 8)]
    for part, expected in zip(rg.evaluate(parts), [a, b, c]):
        np.testing.assert_array_equal(part, expected)
    check_gradient(lambda x, y, z: ops.concat([x, y, z], axis=1), a, b, c)
    check_gradient(lambda x: ops.split(x, 1, 1, 3), a)


def test_concat_grad_partitions_upstream_gradient():
    gy = np.arange(16.0).reshape(2, 8)
    xs = [np.zeros((2, 3)), np.zeros((2, 4)), np.zeros((2, 1))]
    pieces = [ops.ConcatGrad(1, i).compute(gy, *xs) for i in range(3)]
    assert all(p.is_view for p in pieces)
    np.testing.assert_array_equal(np.concatenate([p.array for p in pieces], axis=1), gy)
    np.testing.assert_array_equal(pieces[1].array, gy[:, 3:7])


def test_concat_incompatible_shapes_is_recoverable():
    a = rg.placeholder()
    b = rg.placeholder()
    y = ops.concat([a, b], axis=0)
    with pytest.raises(EvaluationError) as excinfo:
        y.numpy({a: np.zeros((2, 3)), b: np.zeros((2, 4))})
    assert excinfo.value.input_shapes == ((2, 3), (2, 4))


def test_split_wrong_axis():
    with pytest.raises(PreconditionViolation, match="Wrong split axis"):
        ops.split(rg.constant(np.zeros((2, 2))), 2, 0, 1)


@pytest.mark.parametrize("num", [1, 2, 3], ids=["once", "twice", "thrice"])
def test_tile_gradient_counts_copies(num, check_gradient):
    x = rg.constant(np.array([[1.0, 2.0]]))
    y = ops.tile(x, 0, num)
    np.testing.assert_array_equal(y.numpy(), np.tile([[1.0, 2.0]], (num, 1)))
    (gx,) = rg.gradients(y, [x])
    np.testing.assert_array_equal(rg.evaluate(gx), [[num, num]])
    check_gradient(lambda t: ops.tile(t, 1, num), np.arange(6.0).reshape(2, 3))


def test_tile_needs_positive_count():
    with pytest.raises(GraphError):
        ops.Tile(0, 0)


def test_clip_gradient_is_zero_at_boundaries():
    x = rg.constant(np.array([-2.0, -1.0, 0.0, 1.0, 2.0]))
    y = ops.clip(x, -1.0, 1.0)
    np.testing.assert_array_equal(y.numpy(), [-1.0, -1.0, 0.0, 1.0, 1.0])
    (gx,) = rg.gradients(y, [x])
    np.testing.assert_array_equal(rg.evaluate(gx), [0.0, 0.0, 1.0, 0.0, 0.0])


def test_add_n(check_gradient):
    a, b, c = np.ones((2, 2)), np.full((2, 2), 2.0), np.full((2, 2), 3.0)
    y = ops.add_n([rg.constant(a), rg.constant(b), rg.constant(c)])
    np.testing.assert_array_equal(y.numpy(), np.full((2, 2), 6.0))
    check_gradient(lambda x, y, z: ops.add_n([x, y, z]), a, b, c)


def test_add_n_single_input_is_an_alias():
    x = np.arange(3.0)
    value = ops.AddN().compute(x)
    assert value.is_view
    assert np.shares_memory(value.array, x)


def test_gather_forward():
    param = rg.constant(np.arange(12.0).reshape(3, 4))
    y = ops.gather(param, [2, 0], axis=0)
    assert y.shape == (2, 4)
    np.testing.assert_array_equal(y.numpy(), [[8, 9, 10, 11], [0, 1, 2, 3]])
    y = ops.gather(param, [[1, 3]], axis=1)
    np.testing.assert_array_equal(y.numpy(), [[[1, 3]], [[5, 7]], [[9, 11]]])


def test_gather_repeated_indices_accumulate():
    param = rg.constant(np.zeros((3, 2)))
    y = ops.gather(param, [0, 0, 1], axis=0)
    (gparam,) = rg.gradients(y, [param])
    np.testing.assert_array_equal(rg.evaluate(gparam), [[2, 2], [1, 1], [0, 0]])


def test_gather_gradient(check_gradient):
    check_gradient(lambda p: ops.gather(p, [3, 1, 3], axis=1), np.arange(8.0).reshape(2, 4))


def test_gather_negative_indices():
    param = rg.constant(np.arange(4.0))
    with pytest.raises(PreconditionViolation):
        ops.gather(param, [-1], axis=0).numpy()
    y = ops.gather(param, [-1], axis=0, normalize_negative_indices=True)
    np.testing.assert_array_equal(y.numpy(), [3.0])


def test_index_op():
    x = rg.constant(np.arange(5.0) * 10)
    y = ops.index(x, -1)
    assert y.shape == ()
    assert y.numpy() == 40.0
    gx = ops.IndexOpGrad(-1)(x, rg.constant(np.array(7.0)))
    np.testing.assert_array_equal(gx.numpy(), [0, 0, 0, 0, 7])


def test_index_out_of_bounds_is_fatal():
    with pytest.raises(PreconditionViolation):
        ops.index(rg.constant(np.zeros(3)), 3).numpy()


def test_setdiff1d():
    a = rg.constant(np.array([5, 1, 3, 3, 7], dtype=np.int64))
    b = rg.constant(np.array([3, 9], dtype=np.int64))
    np.testing.assert_array_equal(ops.setdiff1d(a, b).numpy(), [1, 5, 7])


def test_add_n_promotes_mixed_dtypes():
    a = rg.constant(np.array([1, 2], dtype=np.int64))
    b = rg.constant(np.array([3, 4], dtype=np.int64))
    c = rg.constant(np.array([0.5, 0.5]))
    y = ops.add_n([a, b, c]).numpy()
    assert y.dtype == np.float64
    np.testing.assert_array_equal(y, [4.5, 6.5])


def test_add_n_broadcasts():
    xs = [rg.constant(np.ones(3)), rg.constant(np.ones(3)), rg.constant(np.ones((2, 3)))]
    y = ops.add_n(xs)
    assert y.shape == (2, 3)
    np.testing.assert_array_equal(y.numpy(), np.full((2, 3), 3.0))


def test_add_n_broadcast_gradients_match_input_shapes(check_gradient):
    a = rg.constant(np.ones(3))
    b = rg.constant(np.ones((2, 3)))
    ga, gb = rg.gradients(ops.add_n([a, b]), [a, b])
    ga_value, gb_value = rg.evaluate([ga, gb])
    np.testing.assert_array_equal(ga_value, [2.0, 2.0, 2.0])
    np.testing.assert_array_equal(gb_value, np.ones((2, 3)))
    check_gradient(
        lambda x, y, z: ops.add_n([x, y, z]), np.ones(3), np.ones((2, 1)), np.ones((2, 3))
    )
