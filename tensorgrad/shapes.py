"""Shape arithmetic: strides, broadcasting, reshaping and permutations."""

from __future__ import annotations

from collections.abc import Sequence

import numpy as np

Shape = tuple[int, ...]


def _format_shape(shape: Sequence[int]) -> str:
    return "[" + ", ".join(str(dim) for dim in shape) + "]"


def _pad(shape: Sequence[int], rank: int) -> Shape:
    """Left-pad ``shape`` with ones up to ``rank`` dimensions."""
    return (1,) * (rank - len(shape)) + tuple(shape)


def calculate_strides(shape: Sequence[int]) -> Shape:
    """Row-major strides, in elements, for ``shape``."""
    strides: list[int] = []
    step = 1
    for dim in reversed(shape):
        strides.append(step)
        step *= dim
    return tuple(reversed(strides))


def linear_index(shape: Sequence[int], indices: Sequence[int]) -> int:
    """Flat row-major offset of ``indices`` inside a tensor of ``shape``."""
    if len(indices) != len(shape):
        raise ValueError("Number of indices must match tensor dimensions.")
    offset = 0
    for index, dim, stride in zip(indices, shape, calculate_strides(shape)):
        if not 0 <= index < dim:
            raise IndexError("Index out of bounds.")
        offset += index * stride
    return offset


def is_broadcastable(shape1: Sequence[int], shape2: Sequence[int]) -> bool:
    """True if the two shapes can be broadcast against each other."""
    rank = max(len(shape1), len(shape2))
    return all(
        a == b or a == 1 or b == 1
        for a, b in zip(_pad(shape1, rank), _pad(shape2, rank))
    )


def broadcast_shape(shape1: Sequence[int], shape2: Sequence[int]) -> Shape:
    """The shape that results from broadcasting ``shape1`` with ``shape2``."""
    rank = max(len(shape1), len(shape2))
    result = []
    for a, b in zip(_pad(shape1, rank), _pad(shape2, rank)):
        if a != b and a != 1 and b != 1:
            raise ValueError("Shapes are not broadcastable")
        result.append(max(a, b))
    return tuple(result)


def reduce_gradient(grad, parent_shape: Sequence[int]) -> np.ndarray:
    """Sum a broadcast gradient back down to ``parent_shape``."""
    grad = np.asarray(grad, dtype=np.float32)
    parent_shape = tuple(parent_shape)
    if grad.shape == parent_shape:
        return grad.copy()

    rank = max(grad.ndim, len(parent_shape))
    padded_grad = _pad(grad.shape, rank)
    padded_parent = _pad(parent_shape, rank)

    axes = []
    for axis, (grad_dim, parent_dim) in enumerate(zip(padded_grad, padded_parent)):
        if parent_dim == 1 and grad_dim != 1:
            axes.append(axis)
        elif parent_dim != grad_dim:
            raise ValueError("Inconsistent shapes found during gradient reduction.")

    reduced = grad.reshape(padded_grad).sum(
        axis=tuple(axes), keepdims=True, dtype=np.float32
    )
    return reduced.reshape(parent_shape)


def infer_reshape(current_elements: int, new_shape: Sequence[int]) -> Shape:
    """Resolve a target shape, filling in a single ``-1`` dimension."""
    known = 1
    wildcard: int | None = None
    for position, dim in enumerate(new_shape):
        if dim == -1:
            if wildcard is not None:
                raise ValueError("Reshape can only have one dimension specified as -1.")
            wildcard = position
        elif dim <= 0:
            raise ValueError("Reshape dimensions must be positive or -1.")
        else:
            known *= dim

    resolved = list(new_shape)
    total = known
    if wildcard is not None:
        if current_elements == 0:
            raise ValueError(
                "Cannot infer dimension for -1 when reshaping an empty tensor "
                "to a non-empty one."
            )
        if current_elements % known != 0:
            raise ValueError(
                "Cannot infer dimension for -1: total elements not divisible "
                "by product of other dimensions."
            )
        resolved[wildcard] = current_elements // known
        total = current_elements

    if total != current_elements:
        raise ValueError(
            "Total number of elements must remain the same during reshape. "
            f"Cannot reshape {current_elements} elements to "
            f"{_format_shape(new_shape)} ({total} elements)."
        )
    return tuple(resolved)


def validate_permutation(permutation: Sequence[int], rank: int) -> Shape:
    """Check that ``permutation`` reorders ``rank`` axes; return it as a tuple."""
    perm = tuple(int(axis) for axis in permutation)
    if len(perm) != rank:
        raise ValueError(
            f"Permutation size ({len(perm)}) must match tensor dimension ({rank})."
        )
    if sorted(perm) != list(range(rank)):
        raise ValueError(f"Invalid permutation {_format_shape(perm)} for transpose.")
    return perm


def inverse_permutation(permutation: Sequence[int]) -> Shape:
    """The permutation that undoes ``permutation``."""
    perm = tuple(permutation)
    return tuple(sorted(range(len(perm)), key=perm.__getitem__))