"""Operation tags and the backward rules of the basic tensor operations.

Every rule takes the incoming gradient and what the forward pass used, and
returns the gradient for each input, already reduced to that input's shape.
"""

from __future__ import annotations

import enum
from collections.abc import Sequence

import numpy as np

from tensorgrad import kernels
from tensorgrad.shapes import broadcast_shape, inverse_permutation, reduce_gradient


class OperationType(enum.Enum):
    """The operation that produced a tensor, if any."""

    NONE = "none"
    ADD = "add"
    SUB = "sub"
    MUL = "mul"
    DIV = "div"
    TRANSPOSE = "transpose"
    RESHAPE = "reshape"
    DOT = "dot"
    SUM = "sum"
    RELU = "relu"
    GELU = "gelu"
    SIGMOID = "sigmoid"
    TANH = "tanh"
    LOG_SOFTMAX = "log_softmax"
    NEGATIVE_LOG_LIKELIHOOD = "negative_log_likelihood"
    LAYER_NORM = "layer_norm"
    SOFTMAX = "softmax"
    DROPOUT = "dropout"
    EMBEDDING_LOOKUP = "embedding_lookup"


def _as_array(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


def add_backward(
    grad, shape_a: Sequence[int], shape_b: Sequence[int]
) -> tuple[np.ndarray, np.ndarray]:
    """Gradients of ``a + b``: the incoming gradient, reduced to each shape."""
    grad = _as_array(grad)
    return reduce_gradient(grad, shape_a), reduce_gradient(grad, shape_b)


def sub_backward(
    grad, shape_a: Sequence[int], shape_b: Sequence[int]
) -> tuple[np.ndarray, np.ndarray]:
    """Gradients of ``a - b``: the gradient for ``a``, its negation for ``b``."""
    grad = _as_array(grad)
    return reduce_gradient(grad, shape_a), reduce_gradient(-grad, shape_b)


def mul_backward(grad, a, b) -> tuple[np.ndarray, np.ndarray]:
    """Gradients of the element-wise product ``a * b``."""
    grad = _as_array(grad)
    a = _as_array(a)
    b = _as_array(b)

    shape_for_a = broadcast_shape(grad.shape, b.shape)
    grad_a = kernels.broadcast_to(grad, shape_for_a) * kernels.broadcast_to(b, shape_for_a)

    shape_for_b = broadcast_shape(grad.shape, a.shape)
    grad_b = kernels.broadcast_to(grad, shape_for_b) * kernels.broadcast_to(a, shape_for_b)

    return reduce_gradient(grad_a, a.shape), reduce_gradient(grad_b, b.shape)


def div_backward(grad, a, b) -> tuple[np.ndarray, np.ndarray]:
    """Gradients of the element-wise quotient ``a / b``.

    Where the denominator is zero the gradient contribution is zero.
    """
    grad = _as_array(grad)
    a = _as_array(a)
    b = _as_array(b)

    shape_for_a = broadcast_shape(grad.shape, b.shape)
    grad_expanded = kernels.broadcast_to(grad, shape_for_a)
    denom = kernels.broadcast_to(b, shape_for_a)
    safe_denom = np.where(denom == 0.0, np.float32(1.0), denom)
    grad_a = np.where(denom == 0.0, np.float32(0.0), grad_expanded / safe_denom)

    shape_for_b = broadcast_shape(broadcast_shape(grad.shape, a.shape), b.shape)
    grad_expanded = kernels.broadcast_to(grad, shape_for_b)
    numer = kernels.broadcast_to(a, shape_for_b)
    denom = kernels.broadcast_to(b, shape_for_b)
    denom_sq = denom * denom
    safe_sq = np.where(denom_sq == 0.0, np.float32(1.0), denom_sq)
    grad_b = np.where(
        denom_sq == 0.0, np.float32(0.0), grad_expanded * (-numer / safe_sq)
    )

    return (
        reduce_gradient(grad_a.astype(np.float32), a.shape),
        reduce_gradient(grad_b.astype(np.float32), b.shape),
    )


def transpose_backward(grad, permutation: Sequence[int]) -> np.ndarray:
    """Gradient of a transpose: the gradient transposed by the inverse permutation."""
    return kernels.transpose(_as_array(grad), inverse_permutation(permutation))


def reshape_backward(grad, original_shape: Sequence[int]) -> np.ndarray:
    """Gradient of a reshape: the gradient laid out in the input's shape."""
    grad = _as_array(grad)
    target = tuple(int(dim) for dim in original_shape)
    expected = 1
    for dim in target:
        expected *= dim
    if grad.size != expected:
        raise ValueError("Gradient element count mismatch during reshape backward pass.")
    return grad.reshape(target).copy()


def _swap_last_two(values: np.ndarray) -> np.ndarray:
    perm = list(range(values.ndim))
    if len(perm) >= 2:
        perm[-1], perm[-2] = perm[-2], perm[-1]
    return kernels.transpose(values, perm)


def dot_backward(grad, a, b) -> tuple[np.ndarray, np.ndarray]:
    """Gradients of ``a.dot(b)``: ``grad . b^T`` and ``a^T . grad``, reduced."""
    grad = _as_array(grad)
    a = _as_array(a)
    b = _as_array(b)

    grad_a = kernels.dot(grad, _swap_last_two(b))
    grad_a = reduce_gradient(grad_a, a.shape)

    grad_b = kernels.dot(_swap_last_two(a), grad)
    grad_b = reduce_gradient(grad_b, b.shape)

    return grad_a, grad_b


def sum_backward(grad, shape: Sequence[int]) -> np.ndarray:
    """Gradient of a full sum: the scalar gradient spread over ``shape``."""
    grad = _as_array(grad)
    if grad.shape != (1,):
        raise ValueError("Gradient for sum operation must be a scalar.")
    return np.full(tuple(shape), grad[0], dtype=np.float32)