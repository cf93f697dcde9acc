# tensorgrad

A small n-dimensional `float32` tensor with NumPy-style broadcasting and
reverse-mode automatic differentiation, together with the backward rules of
common neural-network operations, a batch-running thread pool and a
transformer settings object.

## Installation

```
pip install .
```

To run the test suite:

```
pip install ".[test]"
pytest
```

## Tensors

`tensorgrad.tensor.Tensor(shape, data=None, name="")` holds a shape, a block of
`float32` values and a gradient of the same size. Without `data` the values are
zeros; with `data` its size must match the shape, or `ValueError` is raised. A
tensor given a non-empty name is optimizable and is recorded in a class-wide
list returned by `Tensor.optimizable_tensors()`.

```python
from tensorgrad.tensor import Tensor

a = Tensor([2, 2], [1.0, 2.0, 3.0, 4.0], "A")
b = Tensor([1, 2], [0.5, 1.0], "B")

c = (a + b) * a          # broadcasting element-wise arithmetic
d = c.dot(a).transpose([1, 0]).reshape([4, 1])
loss = d.sum()           # shape (1,)

loss.backward(Tensor([1], [1.0]))
print(a.grad)            # accumulated gradient of A
print(b.grad)            # gradient of B, summed over the broadcast axis
```

Members:

- `shape`, `data`, `grad` – the dimensions, and the values and gradient as
  arrays laid out in that shape; `num_elements` (a tensor with no dimensions
  has none); `operation`, the `OperationType` that produced the tensor.
- `get(indices)`, `set(indices, value)` – element access by multi-dimensional
  index; a wrong number of indices raises `ValueError`, an index out of range
  `IndexError`.
- `set_data(data)` – replace the values, reset the gradient and make the
  tensor a leaf again.
- `broadcast_to(new_shape)` – a new, untracked tensor with the values repeated.
- `+`, `-`, `*`, `/` between tensors, with broadcasting; a zero divisor raises
  `ZeroDivisionError`.
- `dot(other)` – vector dot product (a one-element result), matrix–vector
  product, and batched matrix product with broadcast batch dimensions.
- `transpose(permutation)` and `reshape(new_shape)`; one dimension of the new
  shape may be `-1`. The reshaped tensor shares its values with the original.
- `sum()` – the total as a one-element tensor; `softmax(dim=-1)`.
- `zero_grad()` and `backward(grad_output)`.

`backward` takes a `Tensor` or an array of exactly the tensor's shape, adds it
to the tensor's gradient and passes it on to the tensors the result was
computed from, summing over broadcast dimensions. The softmax gradient is
taken over the last axis.

## Lower-level pieces

- `tensorgrad.shapes` – `calculate_strides`, `linear_index`,
  `is_broadcastable`, `broadcast_shape`, `reduce_gradient`, `infer_reshape`,
  `validate_permutation` and `inverse_permutation`.
- `tensorgrad.kernels` – forward computations on arrays: `broadcast_to`,
  `add`, `sub`, `mul`, `div`, `transpose`, `dot` and `softmax`.
- `tensorgrad.gradients` – `OperationType` and the backward rules
  `add_backward`, `sub_backward`, `mul_backward`, `div_backward` (zero where
  the denominator is zero), `transpose_backward`, `reshape_backward`,
  `dot_backward` and `sum_backward`.
- `tensorgrad.nn_gradients` – backward rules on arrays for `relu_backward`,
  `gelu_backward` (tanh approximation), `sigmoid_backward`, `tanh_backward`,
  `log_softmax_backward`, `nll_loss_backward` (mean over rows),
  `layer_norm_backward` (returns the input, gamma and beta gradients),
  `softmax_backward`, `dropout_backward` and `embedding_backward`.
- `tensorgrad.threadpool.ThreadPool(num_threads)` – a fixed set of worker
  threads. `run_batch(tasks)` runs every callable and blocks until all are
  done, then re-raises the first exception a task raised. Zero threads is
  logged and treated as one; a negative count raises `ValueError`.
  `shutdown()` lets queued work finish and joins the workers; afterwards
  `run_batch` raises `RuntimeError`. The pool is a context manager that shuts
  down on exit.
- `tensorgrad.config.TransformerConfig` – a frozen dataclass of model,
  training and inference settings built by
  `TransformerConfig.from_mapping(values)` from camelCase keys such as
  `numThreads`, `embedDim` and `learningRate`. String values are converted to
  integers, floats and booleans (`1/true/yes/on`, `0/false/no/off`); a missing
  key raises `KeyError`, a value that cannot be converted `ValueError`. A
  `weightsFilename` of `auto` becomes `weigth-<numLayers>-<ffHiddenDim>-<numHeads>.bin`.
  `model_file_name_by_parameters()` returns `"0"`.

## What this package does not do

The `Tensor` class itself only builds graphs from arithmetic, `dot`,
`transpose`, `reshape`, `sum` and `softmax`. There are no layers, activation
or loss functions that produce tensors, no optimizer, no model, no data
loading, no saving or loading of weights, no reading of configuration files
(settings come from a mapping you supply) and no command-line program. The
`nn_gradients` rules are plain functions on arrays for use by such code.