"""A float32 tensor that records the operations producing it and
back-propagates gradients through them."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

import numpy as np

from tensorgrad import kernels
from tensorgrad.gradients import (
    OperationType,
    add_backward,
    div_backward,
    dot_backward,
    mul_backward,
    reshape_backward,
    sub_backward,
    sum_backward,
    transpose_backward,
)
from tensorgrad.nn_gradients import (
    dropout_backward,
    embedding_backward,
    gelu_backward,
    layer_norm_backward,
    log_softmax_backward,
    nll_loss_backward,
    relu_backward,
    sigmoid_backward,
    softmax_backward,
    tanh_backward,
)
from tensorgrad.shapes import infer_reshape, linear_index, reduce_gradient


def _count(shape: tuple[int, ...]) -> int:
    if not shape:
        return 0
    total = 1
    for dim in shape:
        total *= dim
    return total


def _values(item) -> np.ndarray:
    if isinstance(item, Tensor):
        return item.data
    return np.asarray(item, dtype=np.float32)


class Tensor:
    """A dense float32 tensor with reverse-mode automatic differentiation.

    A tensor given a non-empty name is optimizable and is recorded in a
    class-wide registry of trainable tensors.
    """

    _optimizable: list[Tensor] = []

    def __init__(self, shape: Sequence[int] = (), data=None, name: str = "") -> None:
        self._shape = tuple(int(dim) for dim in shape)
        count = _count(self._shape)
        if data is None:
            flat = np.zeros(count, dtype=np.float32)
        else:
            flat = np.array(data, dtype=np.float32).reshape(-1)
            if flat.size != count:
                raise ValueError(
                    "Data size does not match the specified shape in constructor."
                )
        self._data = flat
        self._grad = np.zeros(count, dtype=np.float32)
        self.name = name
        self.is_optimizable = bool(name)
        self._op = OperationType.NONE
        self._parents: tuple[Tensor, ...] = ()
        self._context: dict[str, Any] = {}
        if self.is_optimizable:
            Tensor._optimizable.append(self)

    @classmethod
    def optimizable_tensors(cls) -> list[Tensor]:
        """Every named (trainable) tensor created so far."""
        return list(cls._optimizable)

    @classmethod
    def _derive(cls, values, op: OperationType, parents, **context) -> Tensor:
        array = np.asarray(values, dtype=np.float32)
        result = cls(array.shape, array)
        result._op = op
        result._parents = tuple(parents)
        result._context = context
        return result

    def _view(self, flat: np.ndarray) -> np.ndarray:
        return flat.reshape(self._shape) if self._shape else flat

    @property
    def shape(self) -> tuple[int, ...]:
        """The tensor's dimensions."""
        return self._shape

    @property
    def data(self) -> np.ndarray:
        """The values, as an array view laid out in the tensor's shape."""
        return self._view(self._data)

    @property
    def grad(self) -> np.ndarray:
        """The accumulated gradient, laid out in the tensor's shape."""
        return self._view(self._grad)

    @property
    def operation(self) -> OperationType:
        """The operation that produced this tensor."""
        return self._op

    @property
    def num_elements(self) -> int:
        """Number of elements; a tensor without dimensions has none."""
        return _count(self._shape)

    def get(self, indices: Sequence[int]) -> float:
        """The element at the multi-dimensional ``indices``."""
        return float(self._data[linear_index(self._shape, indices)])

    def set(self, indices: Sequence[int], value: float) -> None:
        """Store ``value`` at the multi-dimensional ``indices``."""
        self._data[linear_index(self._shape, indices)] = value

    def set_data(self, data) -> None:
        """Replace the values, reset the gradient and make this a leaf tensor."""
        flat = np.array(data, dtype=np.float32).reshape(-1)
        count = self.num_elements
        if flat.size != count:
            raise ValueError("Data size mismatch in set_data.")
        self._data = flat
        self._grad = np.zeros(count, dtype=np.float32)
        self._op = OperationType.NONE
        self._parents = ()
        self._context = {}

    def broadcast_to(self, new_shape: Sequence[int]) -> Tensor:
        """A new tensor holding this one's values repeated out to ``new_shape``."""
        expanded = kernels.broadcast_to(self.data, new_shape)
        return Tensor(expanded.shape, expanded)

    def _binary(self, other, kernel: Callable, op: OperationType) -> Tensor:
        if not isinstance(other, Tensor):
            return NotImplemented
        return Tensor._derive(kernel(self.data, other.data), op, (self, other))

    def __add__(self, other: Tensor) -> Tensor:
        return self._binary(other, kernels.add, OperationType.ADD)

    def __sub__(self, other: Tensor) -> Tensor:
        return self._binary(other, kernels.sub, OperationType.SUB)

    def __mul__(self, other: Tensor) -> Tensor:
        return self._binary(other, kernels.mul, OperationType.MUL)

    def __truediv__(self, other: Tensor) -> Tensor:
        return self._binary(other, kernels.div, OperationType.DIV)

    def transpose(self, permutation: Sequence[int]) -> Tensor:
        """Reorder the axes so that axis ``i`` is old axis ``permutation[i]``."""
        perm = tuple(int(axis) for axis in permutation)
        values = kernels.transpose(self.data, perm)
        return Tensor._derive(values, OperationType.TRANSPOSE, (self,), permutation=perm)

    def reshape(self, new_shape: Sequence[int]) -> Tensor:
        """A tensor of ``new_shape`` sharing this tensor's values; one ``-1`` is inferred."""
        resolved = infer_reshape(self.num_elements, new_shape)
        result = Tensor(resolved)
        result._data = self._data
        result._grad = np.zeros(_count(resolved), dtype=np.float32)
        result._op = OperationType.RESHAPE
        result._parents = (self,)
        result._context = {"original_shape": self._shape}
        return result

    def dot(self, other: Tensor) -> Tensor:
        """Vector, matrix-vector or batched matrix product."""
        return Tensor._derive(
            kernels.dot(self.data, other.data), OperationType.DOT, (self, other)
        )

    def sum(self) -> Tensor:
        """The sum of all elements, as a one-element tensor."""
        total = self._data.sum(dtype=np.float32)
        return Tensor._derive([total], OperationType.SUM, (self,))

    def softmax(self, dim: int = -1) -> Tensor:
        """Softmax along ``dim`` (``-1`` means the last axis)."""
        if not self._shape:
            raise ValueError("Softmax dimension out of bounds.")
        return Tensor._derive(
            kernels.softmax(self.data, dim), OperationType.SOFTMAX, (self,)
        )

    def zero_grad(self) -> None:
        """Reset the accumulated gradient to zero."""
        self._grad = np.zeros(self.num_elements, dtype=np.float32)

    def backward(self, grad_output) -> None:
        """Accumulate ``grad_output`` and propagate it to the tensors this came from."""
        if isinstance(grad_output, Tensor):
            grad_shape = grad_output.shape
            grad = grad_output.data
        else:
            grad = np.asarray(grad_output, dtype=np.float32)
            grad_shape = grad.shape
        if tuple(grad_shape) != self._shape:
            raise ValueError("Gradient shape mismatch in backward.")
        grad = self._view(np.asarray(grad, dtype=np.float32).reshape(-1))
        self._grad += grad.reshape(-1)

        if self._op is OperationType.NONE or not self._parents:
            return
        self._BACKWARD[self._op](self, grad)

    def _expect_parents(self, count: int) -> tuple[Tensor, ...]:
        if len(self._parents) != count:
            raise RuntimeError(
                f"{self._op.name} operation expected {count} parent(s), "
                f"but found {len(self._parents)}"
            )
        return self._parents

    @staticmethod
    def _needs_grad(tensor: Tensor) -> bool:
        return tensor.is_optimizable or tensor._op is not OperationType.NONE

    def _backward_add(self, grad: np.ndarray) -> None:
        a, b = self._expect_parents(2)
        grad_a, grad_b = add_backward(grad, a.shape, b.shape)
        if self._needs_grad(a):
            a.backward(grad_a)
        if self._needs_grad(b):
            b.backward(grad_b)

    def _backward_sub(self, grad: np.ndarray) -> None:
        a, b = self._expect_parents(2)
        grad_a, grad_b = sub_backward(grad, a.shape, b.shape)
        a.backward(grad_a)
        b.backward(grad_b)

    def _backward_mul(self, grad: np.ndarray) -> None:
        a, b = self._expect_parents(2)
        grad_a, grad_b = mul_backward(grad, a.data, b.data)
        a.backward(grad_a)
        b.backward(grad_b)

    def _backward_div(self, grad: np.ndarray) -> None:
        a, b = self._expect_parents(2)
        grad_a, grad_b = div_backward(grad, a.data, b.data)
        a.backward(grad_a)
        b.backward(grad_b)

    def _backward_transpose(self, grad: np.ndarray) -> None:
        (parent,) = self._expect_parents(1)
        parent.backward(transpose_backward(grad, self._context["permutation"]))

    def _backward_reshape(self, grad: np.ndarray) -> None:
        (parent,) = self._expect_parents(1)
        parent.backward(reshape_backward(grad, self._context["original_shape"]))

    def _backward_dot(self, grad: np.ndarray) -> None:
        a, b = self._expect_parents(2)
        grad_a, grad_b = dot_backward(grad, a.data, b.data)
        a.backward(grad_a)
        b.backward(grad_b)

    def _backward_sum(self, grad: np.ndarray) -> None:
        (parent,) = self._expect_parents(1)
        parent.backward(sum_backward(grad, parent.shape))

    def _backward_elementwise(self, rule: Callable) -> Callable[[Tensor, np.ndarray], None]:
        raise NotImplementedError  # replaced below by _elementwise

    @staticmethod
    def _elementwise(rule: Callable) -> Callable[[Tensor, np.ndarray], None]:
        def apply(self: Tensor, grad: np.ndarray) -> None:
            (parent,) = self._expect_parents(1)
            parent.backward(rule(grad, parent.data))

        return apply

    def _backward_log_softmax(self, grad: np.ndarray) -> None:
        (parent,) = self._expect_parents(1)
        grad_input = log_softmax_backward(grad, self.data)
        parent.backward(reduce_gradient(grad_input, parent.shape))

    def _backward_nll_loss(self, grad: np.ndarray) -> None:
        log_probs, targets = self._expect_parents(2)
        grad_input = nll_loss_backward(grad, log_probs.data, targets.data)
        log_probs.backward(reduce_gradient(grad_input, log_probs.shape))

    def _backward_layer_norm(self, grad: np.ndarray) -> None:
        (parent,) = self._expect_parents(1)
        gamma: Tensor = self._context["gamma"]
        beta: Tensor = self._context["beta"]
        grad_input, grad_gamma, grad_beta = layer_norm_backward(
            grad,
            gamma.data,
            _values(self._context["inv_stddev"]),
            _values(self._context["centered"]),
        )
        if grad.size:
            gamma._grad += grad_gamma.reshape(-1)
            beta._grad += grad_beta.reshape(-1)
        parent.backward(reduce_gradient(grad_input, parent.shape))

    def _backward_softmax(self, grad: np.ndarray) -> None:
        (parent,) = self._expect_parents(1)
        grad_input = softmax_backward(grad, self.data)
        parent.backward(reduce_gradient(grad_input, parent.shape))

    def _backward_dropout(self, grad: np.ndarray) -> None:
        (parent,) = self._expect_parents(1)
        mask = self._context.get("mask")
        if mask is None:
            raise ValueError("Dropout mask is missing or shape mismatch in backward.")
        grad_input = dropout_backward(grad, _values(mask), self._context["scale"])
        parent.backward(reduce_gradient(grad_input, parent.shape))

    def _backward_embedding_lookup(self, grad: np.ndarray) -> None:
        (weights,) = self._expect_parents(1)
        indices = self._context.get("indices")
        if indices is None:
            raise ValueError(
                "Embedding indices tensor is missing or has incorrect shape in backward."
            )
        weights_grad = embedding_backward(grad, _values(indices), weights.shape[0])
        weights._grad += weights_grad.reshape(-1)

    def __repr__(self) -> str:
        label = f"name={self.name!r}, " if self.name else ""
        return f"Tensor({label}shape={list(self._shape)}, op={self._op.value})"


Tensor._BACKWARD = {
    OperationType.ADD: Tensor._backward_add,
    OperationType.SUB: Tensor._backward_sub,
    OperationType.MUL: Tensor._backward_mul,
    OperationType.DIV: Tensor._backward_div,
    OperationType.TRANSPOSE: Tensor._backward_transpose,
    OperationType.RESHAPE: Tensor._backward_reshape,
    OperationType.DOT: Tensor._backward_dot,
    OperationType.SUM: Tensor._backward_sum,
    OperationType.RELU: Tensor._elementwise(relu_backward),
    OperationType.GELU: Tensor._elementwise(gelu_backward),
    OperationType.SIGMOID: Tensor._elementwise(sigmoid_backward),
    OperationType.TANH: Tensor._elementwise(tanh_backward),
    OperationType.LOG_SOFTMAX: Tensor._backward_log_softmax,
    OperationType.NEGATIVE_LOG_LIKELIHOOD: Tensor._backward_nll_loss,
    OperationType.LAYER_NORM: Tensor._backward_layer_norm,
    OperationType.SOFTMAX: Tensor._backward_softmax,
    OperationType.DROPOUT: Tensor._backward_dropout,
    OperationType.EMBEDDING_LOOKUP: Tensor._backward_embedding_lookup,
}
del Tensor._backward_elementwise