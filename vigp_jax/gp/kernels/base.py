# vigp_jax/gp/kernels/base.py

_KERNEL_REGISTRY = {}


def register(name: str, obj):
    if name in _KERNEL_REGISTRY:
        raise KeyError(f"Kernel '{name}' already registered.")
    _KERNEL_REGISTRY[name] = obj


def get(name):
    """Look up a kernel by name; callables pass through unchanged."""
    if callable(name):
        return name
    try:
        return _KERNEL_REGISTRY[name]
    except KeyError:
        raise KeyError(
            f"Unknown kernel '{name}'. "
            f"Available: {list(_KERNEL_REGISTRY.keys())}"
        )
