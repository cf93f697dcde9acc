import numpy as np
import pytest

from tensorgrad.tensor import Tensor


def assert_tensor(tensor, shape, values, atol=1e-5):
    assert tensor.shape == tuple(shape)
    np.testing.assert_allclose(
        np.asarray(tensor.data).reshape(-1), np.asarray(values, dtype=np.float32), atol=atol
    )


def test_addition_broadcast_1x1():
    scalar_like = Tensor((1, 1), [2.0])
    matrix = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    assert_tensor(scalar_like + matrix, (2, 3), [3, 4, 5, 6, 7, 8])


def test_addition_broadcast_1x3():
    vector = Tensor((1, 3), [1, 2, 3])
    matrix = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    assert_tensor(vector + matrix, (2, 3), [2, 4, 6, 5, 7, 9])


def test_addition_broadcast_3d():
    a = Tensor((2, 1, 3), [1, 2, 3, 4, 5, 6])
    b = Tensor((2, 2, 1), [1, 2, 3, 4])
    assert_tensor(a + b, (2, 2, 3), [2, 3, 4, 3, 4, 5, 7, 8, 9, 8, 9, 10])


def test_subtraction_cases():
    scalar_like = Tensor((1, 1), [2.0])
    matrix = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    assert_tensor(matrix - scalar_like, (2, 3), [-1, 0, 1, 2, 3, 4])
    vector = Tensor((1, 3), [1, 2, 3])
    assert_tensor(matrix - vector, (2, 3), [0, 0, 0, 3, 3, 3])
    a = Tensor((2, 1, 3), [1, 2, 3, 4, 5, 6])
    b = Tensor((2, 2, 1), [1, 2, 3, 4])
    assert_tensor(a - b, (2, 2, 3), [0, 1, 2, -1, 0, 1, 1, 2, 3, 0, 1, 2])


def test_dot_2d():
    a = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    b = Tensor((3, 2), [7, 8, 9, 10, 11, 12])
    assert_tensor(a.dot(b), (2, 2), [58, 64, 139, 154])


def test_dot_batched_3d():
    a = Tensor((2, 2, 3), [1, 2, 3, 4, 5, 6, -1, -2, -3, -4, -5, -6])
    b = Tensor((2, 3, 2), [7, 8, 9, 10, 11, 12, -7, -8, -9, -10, -11, -12])
    assert_tensor(a.dot(b), (2, 2, 2), [58, 64, 139, 154, 58, 64, 139, 154])


def test_dot_broadcast_2d_by_3d():
    a = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    b = Tensor((2, 3, 2), [7, 8, 9, 10, 11, 12, -7, -8, -9, -10, -11, -12])
    assert_tensor(a.dot(b), (2, 2, 2), [58, 64, 139, 154, -58, -64, -139, -154])


def test_dot_broadcast_3d_by_2d():
    a = Tensor((2, 2, 3), [1, 2, 3, 4, 5, 6, -1, -2, -3, -4, -5, -6])
    b = Tensor((3, 2), [7, 8, 9, 10, 11, 12])
    assert_tensor(a.dot(b), (2, 2, 2), [58, 64, 139, 154, -58, -64, -139, -154])


def test_dot_inner_mismatch_raises():
    with pytest.raises(ValueError):
        Tensor((2, 3)).dot(Tensor((2, 3)))


def test_transpose_2d_and_3d():
    t = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    assert_tensor(t.transpose([1, 0]), (3, 2), [1, 4, 2, 5, 3, 6])
    assert Tensor((2, 3, 4)).transpose([2, 1, 0]).shape == (4, 3, 2)


def test_transpose_invalid_permutation():
    with pytest.raises(ValueError):
        Tensor((2, 3)).transpose([0, 0])


def test_reshape_cases():
    t = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    assert_tensor(t.reshape((6, 1)), (6, 1), [1, 2, 3, 4, 5, 6])
    assert_tensor(t.reshape((3, 2)), (3, 2), [1, 2, 3, 4, 5, 6])
    t2 = Tensor((2, 2, 2), [1, 2, 3, 4, 5, 6, 7, 8])
    assert_tensor(t2.reshape((4, 2)), (4, 2), [1, 2, 3, 4, 5, 6, 7, 8])


def test_reshape_infers_and_shares_data():
    t = Tensor((2, 3), [1, 2, 3, 4, 5, 6])
    r = t.reshape((-1,))
    assert r.shape == (6,)
    t.set((0, 0), 9.0)
    assert r.get((0,)) == 9.0


def test_reshape_size_mismatch_raises():
    with pytest.raises(ValueError):
        Tensor((2, 3)).reshape((4, 2))


def test_sum_cases():
    assert_tensor(Tensor((5,), [1, 2, 3, 4, 5]).sum(), (1,), [15])
    assert_tensor(Tensor((2, 3), [1, 2, 3, 4, 5, 6]).sum(), (1,), [21])
    assert_tensor(Tensor((0,), []).sum(), (1,), [0])


def test_division_cases():
    a = Tensor((2, 2), [4, 6, 8, 10])
    b = Tensor((2, 2), [2, 3, 4, 5])
    assert_tensor(a / b, (2, 2), [2, 2, 2, 2])
    d = Tensor((2, 2), [10, 20, 30, 40])
    assert_tensor(d / Tensor((1,), [10]), (2, 2), [1, 2, 3, 4])
    assert_tensor(d / Tensor((1, 2), [2, 5]), (2, 2), [5, 4, 15, 8])


def test_division_by_zero_raises():
    with pytest.raises(ZeroDivisionError):
        Tensor((2,), [1, 2]) / Tensor((2,), [1, 0])


def test_backward_pass_chain():
    a = Tensor((2, 2), [1.0, 2.0, 3.0, 4.0], "A")
    b = Tensor((2, 2), [0.5, 1.0, 1.5, 2.0], "B")
    c = Tensor((2, 2), [2.0, 1.0, 1.0, 2.0], "C")
    d = Tensor((2, 2), [1.0, 0.0, 0.0, 1.0], "D")
    e = Tensor((1,), [10.0], "E")

    t1 = a + b
    t2 = t1 * c
    t3 = t2.dot(d)
    t4 = t3.transpose([1, 0])
    t5 = t4.reshape((4, 1))
    t6 = t5 / e
    loss = t6.sum()
    assert_tensor(loss, (1,), [2.25])

    loss.backward(Tensor((1,), [1.0]))
    np.testing.assert_allclose(a.grad.reshape(-1), [0.2, 0.1, 0.1, 0.2], atol=1e-5)
    np.testing.assert_allclose(b.grad.reshape(-1), [0.2, 0.1, 0.1, 0.2], atol=1e-5)
    np.testing.assert_allclose(c.grad.reshape(-1), [0.15, 0.3, 0.45, 0.6], atol=1e-3)
    np.testing.assert_allclose(d.grad.reshape(-1), [0.75, 0.75, 1.5, 1.5], atol=1e-5)
    np.testing.assert_allclose(e.grad.reshape(-1), [-0.225], atol=1e-5)


def test_backward_pass_with_broadcasting():
    a = Tensor((2, 3), [1, 2, 3, 4, 5, 6], "A")
    b = Tensor((3,), [0.5, 1.0, 1.5], "B")
    c = Tensor((2, 1), [2.0, 3.0], "C")
    d = Tensor((1, 3), [1.0, 2.0, 3.0], "D")
    e = Tensor((1,), [10.0], "E")

    t1 = a + b
    t2 = t1 - d
    t3 = t2 * c
    t4 = t3 / e
    t5 = t4.sum()
    final = t5.reshape((1, 1))
    assert_tensor(final, (1, 1), [4.2])

    final.backward(Tensor((1, 1), [1.0]))
    np.testing.assert_allclose(a.grad.reshape(-1), [0.2, 0.2, 0.2, 0.3, 0.3, 0.3], atol=1e-5)
    np.testing.assert_allclose(b.grad.reshape(-1), [0.5, 0.5, 0.5], atol=1e-6)
    np.testing.assert_allclose(c.grad.reshape(-1), [0.3, 1.2], atol=1e-6)
    np.testing.assert_allclose(d.grad.reshape(-1), [-0.5, -0.5, -0.5], atol=1e-6)
    np.testing.assert_allclose(e.grad.reshape(-1), [-0.42], atol=1e-6)


def test_dot_backward_through_sum():
    a = Tensor((2, 3), [1, 2, 3, 4, 5, 6], "dot_a")
    b = Tensor((3, 2), [7, 8, 9, 10, 11, 12], "dot_b")
    a.dot(b).sum().backward(np.array([1.0], dtype=np.float32))
    np.testing.assert_allclose(a.grad, [[15, 19, 23], [15, 19, 23]])
    np.testing.assert_allclose(b.grad, [[5, 5], [7, 7], [9, 9]])


def test_softmax_rows_sum_to_one_and_gradient_vanishes():
    x = Tensor((2, 3), [1, 2, 3, -1, 0, 5], "softmax_x")
    out = x.softmax(-1)
    np.testing.assert_allclose(out.data.sum(axis=-1), [1.0, 1.0], atol=1e-6)
    out.sum().backward(Tensor((1,), [1.0]))
    np.testing.assert_allclose(x.grad, np.zeros((2, 3)), atol=1e-6)


def test_softmax_bad_dim_raises():
    with pytest.raises(ValueError):
        Tensor((2, 3)).softmax(5)


def test_backward_shape_mismatch_raises():
    t = Tensor((2, 2))
    with pytest.raises(ValueError):
        t.backward(Tensor((4,)))


def test_zero_grad_resets_gradient():
    t = Tensor((2,), [1, 2], "zero_me")
    t.backward(Tensor((2,), [3, 4]))
    np.testing.assert_allclose(t.grad, [3, 4])
    t.zero_grad()
    np.testing.assert_allclose(t.grad, [0, 0])


def test_get_set_and_index_errors():
    t = Tensor((2, 3))
    t.set((1, 2), 7.5)
    assert t.get((1, 2)) == 7.5
    assert t.data[1, 2] == 7.5
    with pytest.raises(IndexError):
        t.get((2, 0))
    with pytest.raises(ValueError):
        t.get((0,))


def test_set_data_validates_and_makes_leaf():
    a = Tensor((2,), [1, 2])
    result = a + Tensor((2,), [3, 4])
    result.set_data([5, 6])
    np.testing.assert_allclose(result.data, [5, 6])
    assert result.operation.value == "none"
    with pytest.raises(ValueError):
        result.set_data([1, 2, 3])


def test_constructor_size_mismatch_raises():
    with pytest.raises(ValueError):
        Tensor((2, 2), [1, 2, 3])


def test_num_elements():
    assert Tensor((2, 3, 4)).num_elements == 24
    assert Tensor(()).num_elements == 0


def test_optimizable_registry():
    named = Tensor((1,), [1.0], "registered_weight")
    unnamed = Tensor((1,), [1.0])
    registry = Tensor.optimizable_tensors()
    assert any(t is named for t in registry)
    assert not any(t is unnamed for t in registry)


def test_broadcast_to_repeats_values():
    t = Tensor((1, 3), [1, 2, 3])
    assert_tensor(t.broadcast_to((2, 3)), (2, 3), [1, 2, 3, 1, 2, 3])
    with pytest.raises(ValueError):
        t.broadcast_to((2, 4))