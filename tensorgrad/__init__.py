"""Float32 tensors with broadcasting arithmetic, reverse-mode automatic
differentiation, neural-network backward rules, a thread pool and transformer
settings."""

__version__ = "0.1.0"

__all__ = [
    "config",
    "gradients",
    "kernels",
    "nn_gradients",
    "shapes",
    "tensor",
    "threadpool",
]