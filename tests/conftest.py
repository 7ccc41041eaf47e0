from typing import Callable, List, Optional

import numpy as np
import pytest

import revgraph as rg


@pytest.fixture(autouse=True)
def graph() -> rg.Graph:
    """A fresh default graph for every test."""
    return rg.reset_default_graph()


def numerical_gradient(
    f: Callable[[List[np.ndarray]], float], inputs: List[np.ndarray], i: int, eps: float
) -> np.ndarray:
    """Central finite-difference estimate of df/d inputs[i]."""
    x = inputs[i]
    grad = np.zeros_like(x)
    for idx in np.ndindex(*x.shape):
        orig = x[idx]
        x[idx] = orig + eps
        f_plus = f(inputs)
        x[idx] = orig - eps
        f_minus = f(inputs)
        x[idx] = orig
        grad[idx] = (f_plus - f_minus) / (2 * eps)
    return grad


@pytest.fixture
def check_gradient() -> Callable[..., List[np.ndarray]]:
    """Compare built gradients with central finite differences.

    `build` receives one float64 placeholder per input array and returns the
    output tensor. The output is contracted with a random seed so every
    entry of the Jacobian takes part.
    """

    def check(
        build: Callable[..., rg.Tensor],
        *arrays: np.ndarray,
        eps: float = 1e-6,
        atol: float = 1e-5,
        rtol: float = 1e-5,
        seed: Optional[np.ndarray] = None,
    ) -> List[np.ndarray]:
        inputs = [np.array(a, dtype=np.float64) for a in arrays]
        xs = [rg.placeholder(a.shape, dtype=np.float64) for a in inputs]
        y = build(*xs)

        def feed(values: List[np.ndarray]) -> dict:
            return dict(zip(xs, values))

        y_value = rg.evaluate(y, feed(inputs))
        if seed is None:
            seed = np.random.default_rng(0).standard_normal(y_value.shape)
        seed = np.asarray(seed, dtype=np.float64)

        grads = rg.gradients(y, xs, seeds=[rg.constant(seed)])
        assert all(g is not None for g in grads)
        computed = rg.evaluate(grads, feed(inputs))

        def f(values: List[np.ndarray]) -> float:
            return float(np.sum(rg.evaluate(y, feed(values)) * seed))

        for i, g in enumerate(computed):
            assert g.shape == inputs[i].shape
            expected = numerical_gradient(f, inputs, i, eps)
            np.testing.assert_allclose(g, expected, atol=atol, rtol=rtol)
        return computed

    return check
