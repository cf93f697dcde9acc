"""Forward computations on float32 arrays: broadcasting arithmetic, transposes,
batched matrix products and softmax."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

from tensorgrad.shapes import broadcast_shape, is_broadcastable, validate_permutation


def _as_array(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


def broadcast_to(values, new_shape: Sequence[int]) -> np.ndarray:
    """Return a new array holding ``values`` repeated out to ``new_shape``."""
    array = _as_array(values)
    target = tuple(int(dim) for dim in new_shape)
    if not is_broadcastable(array.shape, target):
        raise ValueError("Cannot broadcast to target shape")
    try:
        expanded = np.broadcast_to(array, target)
    except ValueError:
        raise ValueError("Cannot broadcast to target shape") from None
    return np.array(expanded, dtype=np.float32)


def _broadcast_pair(a, b) -> tuple[np.ndarray, np.ndarray]:
    left = _as_array(a)
    right = _as_array(b)
    shape = broadcast_shape(left.shape, right.shape)
    return broadcast_to(left, shape), broadcast_to(right, shape)


def add(a, b) -> np.ndarray:
    """Element-wise sum with broadcasting."""
    left, right = _broadcast_pair(a, b)
    return left + right


def sub(a, b) -> np.ndarray:
    """Element-wise difference with broadcasting."""
    left, right = _broadcast_pair(a, b)
    return left - right


def mul(a, b) -> np.ndarray:
    """Element-wise product with broadcasting."""
    left, right = _broadcast_pair(a, b)
    return left * right


def div(a, b) -> np.ndarray:
    """Element-wise quotient with broadcasting; a zero divisor is an error."""
    left, right = _broadcast_pair(a, b)
    if np.any(right == 0.0):
        raise ZeroDivisionError("Division by zero encountered in Tensor division.")
    return left / right


def transpose(values, permutation: Sequence[int]) -> np.ndarray:
    """Reorder the axes of ``values`` so that axis ``i`` is old axis ``permutation[i]``."""
    array = _as_array(values)
    perm = validate_permutation(permutation, array.ndim)
    return np.ascontiguousarray(np.transpose(array, perm))


def dot(a, b) -> np.ndarray:
    """Vector, matrix-vector or batched matrix product.

    Two vectors give a one-element vector; a matrix (or batch of matrices) and a
    vector drop the last axis; two matrices multiply with broadcast batch axes.
    """
    left = _as_array(a)
    right = _as_array(b)
    if left.ndim < 1 or right.ndim < 1:
        raise ValueError("Dot product requires tensors with at least 1 dimension.")

    if left.ndim == 1 and right.ndim == 1:
        if left.shape[0] != right.shape[0]:
            raise ValueError("Vector dot product requires vectors of the same size.")
        return np.array([np.dot(left, right)], dtype=np.float32)

    if left.ndim >= 2 and right.ndim == 1:
        cols, size = left.shape[-1], right.shape[0]
        if cols != size:
            raise ValueError(
                f"Matrix-vector product: Inner dimensions must match ({cols} vs {size})."
            )
        return np.matmul(left, right).astype(np.float32, copy=False)

    if left.ndim >= 2 and right.ndim >= 2:
        cols_a, rows_b = left.shape[-1], right.shape[-2]
        if cols_a != rows_b:
            raise ValueError(
                f"Matrix multiplication: Inner dimensions must match ({cols_a} vs {rows_b})."
            )
        broadcast_shape(left.shape[:-2], right.shape[:-2])
        return np.matmul(left, right).astype(np.float32, copy=False)

    raise ValueError("Unsupported shapes for dot product.")


def softmax(values, dim: int = -1) -> np.ndarray:
    """Numerically stable softmax along ``dim`` (``-1`` means the last axis)."""
    array = _as_array(values)
    axis = array.ndim - 1 if dim == -1 else dim
    if not 0 <= axis < array.ndim:
        raise ValueError("Softmax dimension out of bounds.")
    if array.size == 0:
        return np.zeros(array.shape, dtype=np.float32)
    shifted = array - array.max(axis=axis, keepdims=True)
    exps = np.exp(shifted)
    return (exps / exps.sum(axis=axis, keepdims=True)).astype(np.float32, copy=False)