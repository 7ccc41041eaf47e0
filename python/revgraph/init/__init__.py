from .init_basic import (
    constant,
    ones,
    ones_like,
    placeholder,
    rand,
    randn,
    zeros,
    zeros_like,
)

__all__ = [
    "placeholder",
    "rand",
    "randn",
    "constant",
    "ones",
    "zeros",
    "zeros_like",
    "ones_like",
]
