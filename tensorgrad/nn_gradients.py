"""Backward rules of the neural-network operations: activations, softmax
variants, the negative log-likelihood loss, layer normalisation, dropout and
embedding lookup.

Every rule takes the incoming gradient and what the forward pass kept, and
returns the gradient for each input.
"""

from __future__ import annotations

import numpy as np

from tensorgrad.shapes import reduce_gradient

_SQRT_2_OVER_PI = np.float32(0.7978845608028654)
_GELU_CONSTANT = np.float32(0.044715)


def _as_array(values) -> np.ndarray:
    return np.asarray(values, dtype=np.float32)


def _same_shape(grad: np.ndarray, other: np.ndarray, what: str) -> None:
    if grad.shape != other.shape:
        raise ValueError(
            f"Gradient shape {grad.shape} does not match {what} shape {other.shape}."
        )


def relu_backward(grad, x) -> np.ndarray:
    """Pass the gradient through where the input was positive."""
    grad = _as_array(grad)
    x = _as_array(x)
    _same_shape(grad, x, "input")
    return np.where(x > 0, grad, np.float32(0.0)).astype(np.float32)


def gelu_backward(grad, x) -> np.ndarray:
    """Gradient of the tanh approximation of GELU."""
    grad = _as_array(grad)
    x = _as_array(x)
    _same_shape(grad, x, "input")
    tanh_val = np.tanh(_SQRT_2_OVER_PI * (x + _GELU_CONSTANT * x * x * x))
    sech_sq = 1.0 - tanh_val * tanh_val
    derivative = 0.5 * (1.0 + tanh_val) + 0.5 * x * sech_sq * _SQRT_2_OVER_PI * (
        1.0 + 3.0 * _GELU_CONSTANT * x * x
    )
    return (grad * derivative).astype(np.float32)


def sigmoid_backward(grad, x) -> np.ndarray:
    """Gradient of the logistic sigmoid: ``s(x) * (1 - s(x))``."""
    grad = _as_array(grad)
    x = _as_array(x)
    _same_shape(grad, x, "input")
    sig = 1.0 / (1.0 + np.exp(-x))
    return (grad * (sig * (1.0 - sig))).astype(np.float32)


def tanh_backward(grad, x) -> np.ndarray:
    """Gradient of tanh: ``1 - tanh(x)^2``."""
    grad = _as_array(grad)
    x = _as_array(x)
    _same_shape(grad, x, "input")
    t = np.tanh(x)
    return (grad * (1.0 - t * t)).astype(np.float32)


def log_softmax_backward(grad, output) -> np.ndarray:
    """Gradient of log-softmax over the last axis, given its output."""
    grad = _as_array(grad)
    output = _as_array(output)
    _same_shape(grad, output, "output")
    if output.ndim == 0 or output.size == 0:
        return np.zeros(output.shape, dtype=np.float32)
    row_sums = grad.sum(axis=-1, keepdims=True, dtype=np.float32)
    return (grad - np.exp(output) * row_sums).astype(np.float32)


def nll_loss_backward(grad, log_probs, targets) -> np.ndarray:
    """Gradient of the mean negative log-likelihood with respect to log-probabilities.

    ``targets`` holds one class index per row of ``log_probs``; the gradient is
    ``-grad / rows`` at each target class and zero elsewhere.
    """
    grad = _as_array(grad)
    log_probs = _as_array(log_probs)
    targets = _as_array(targets).reshape(-1)
    if grad.size != 1:
        raise ValueError("Gradient for NLLLoss must be a scalar.")
    loss_grad = grad.reshape(-1)[0]

    result = np.zeros(log_probs.shape, dtype=np.float32)
    if log_probs.ndim == 0 or log_probs.size == 0:
        return result

    classes = log_probs.shape[-1]
    rows = log_probs.size // classes
    if targets.size != rows:
        raise ValueError(
            "Target data size mismatch with log probabilities outer dimensions "
            "in NLLLoss backward."
        )
    target_classes = np.trunc(targets).astype(np.int64)
    if np.any((target_classes < 0) | (target_classes >= classes)):
        raise IndexError("Target class index out of bounds in NLLLoss backward.")

    flat = result.reshape(rows, classes)
    flat[np.arange(rows), target_classes] = -loss_grad / np.float32(rows)
    return result


def layer_norm_backward(
    grad, gamma, inv_stddev, centered
) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
    """Gradients of layer normalisation over the last axis.

    ``centered`` is the input minus its row mean and ``inv_stddev`` holds one
    inverse standard deviation per row. Returns the gradients for the input,
    for ``gamma`` and for ``beta``.
    """
    grad = _as_array(grad)
    gamma = _as_array(gamma).reshape(-1)
    inv_stddev = _as_array(inv_stddev).reshape(-1)
    centered = _as_array(centered)
    _same_shape(grad, centered, "centered input")

    if grad.ndim == 0 or grad.size == 0:
        return (
            np.zeros(grad.shape, dtype=np.float32),
            np.zeros(gamma.shape, dtype=np.float32),
            np.zeros(gamma.shape, dtype=np.float32),
        )

    features = grad.shape[-1]
    rows = grad.size // features
    if gamma.size != features:
        raise ValueError("Gamma or Beta gradient size mismatch in LayerNorm backward.")
    if inv_stddev.size != rows:
        raise ValueError("Inverse standard deviation must hold one value per row.")

    g = grad.reshape(rows, features)
    c = centered.reshape(rows, features)
    inv = inv_stddev.reshape(rows, 1)

    grad_gamma = (g * c * inv).sum(axis=0, dtype=np.float32)
    grad_beta = g.sum(axis=0, dtype=np.float32)

    term1 = gamma * inv
    sum_grad_centered = (g * c).sum(axis=1, keepdims=True, dtype=np.float32)
    term2 = gamma * c * inv**3 / np.float32(features) * sum_grad_centered
    term3 = g.sum(axis=1, keepdims=True, dtype=np.float32) / np.float32(features)
    grad_input = g * term1 - term2 - term3 * term1

    return (
        grad_input.reshape(grad.shape).astype(np.float32),
        grad_gamma.astype(np.float32),
        grad_beta.astype(np.float32),
    )


def softmax_backward(grad, output) -> np.ndarray:
    """Gradient of softmax over the last axis, given its output."""
    grad = _as_array(grad)
    output = _as_array(output)
    _same_shape(grad, output, "output")
    if output.ndim == 0 or output.size == 0:
        return np.zeros(output.shape, dtype=np.float32)
    weighted = (grad * output).sum(axis=-1, keepdims=True, dtype=np.float32)
    return (output * (grad - weighted)).astype(np.float32)


def dropout_backward(grad, mask, scale: float) -> np.ndarray:
    """Pass the gradient through the kept elements, scaled as in the forward pass."""
    grad = _as_array(grad)
    mask = _as_array(mask)
    if mask.shape != grad.shape:
        raise ValueError("Dropout mask is missing or shape mismatch in backward.")
    return (grad * mask * np.float32(scale)).astype(np.float32)


def embedding_backward(grad, indices, vocab_size: int) -> np.ndarray:
    """Gradient of an embedding lookup with respect to the weight table.

    ``indices`` is a ``(batch, sequence)`` array of token ids and ``grad`` has
    shape ``(batch, sequence, embed_dim)``; each token's row collects the sum
    of the gradients from every position where it appeared.
    """
    grad = _as_array(grad)
    ids = _as_array(indices)
    if ids.ndim != 2:
        raise ValueError(
            "Embedding indices tensor is missing or has incorrect shape in backward."
        )
    if grad.ndim < 1:
        raise ValueError("Gradient output shape mismatch in EmbeddingLookup backward.")
    batch, seq = ids.shape
    embed_dim = grad.shape[-1]
    if grad.shape != (batch, seq, embed_dim):
        raise ValueError("Gradient output shape mismatch in EmbeddingLookup backward.")

    flat_ids = ids.reshape(-1)
    if np.any((flat_ids < 0) | (flat_ids >= vocab_size) | (np.fmod(flat_ids, 1.0) != 0.0)):
        raise ValueError(
            "Input token ID out of vocabulary bounds or not an integer in "
            "Embedding backward."
        )

    weights_grad = np.zeros((int(vocab_size), embed_dim), dtype=np.float32)
    np.add.at(weights_grad, flat_ids.astype(np.int64), grad.reshape(-1, embed_dim))
    return weights_grad


__all__ = [
    "dropout_backward",
    "embedding_backward",
    "gelu_backward",
    "layer_norm_backward",
    "log_softmax_backward",
    "nll_loss_backward",
    "reduce_gradient",
    "relu_backward",
    "sigmoid_backward",
    "softmax_backward",
    "tanh_backward",
]