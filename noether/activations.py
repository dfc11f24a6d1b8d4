"""
Activation Functions
====================

Elementwise non-linearities applied by ActivationLayer.

Each activation implements:
- forward(x): f(x)
- backward(x): f'(x), evaluated elementwise
- backprop(x, grad_output): gradient w.r.t. x given dL/df(x)

Inputs are the (sx, sy, sz) arrays held by Tensor3D, but nothing here
depends on the number of dimensions.
"""

import numpy as np


class Activation:
    """Base class for all activation functions."""

    def forward(self, x):
        """Apply activation function."""
        raise NotImplementedError

    def backward(self, x):
        """Compute derivative of activation w.r.t. input."""
        raise NotImplementedError

    def backprop(self, x, grad_output):
        """Chain rule for elementwise activations: dL/dx = dL/dy * f'(x)."""
        return grad_output * self.backward(x)

    def __call__(self, x):
        return self.forward(x)

    def __repr__(self):
        return f"{type(self).__name__}()"


class ReLU(Activation):
    """
    Rectified Linear Unit: f(x) = max(0, x)

    Derivative:
        f'(x) = 1 if x > 0 else 0
    """

    def forward(self, x):
        return np.maximum(0, x).astype(x.dtype, copy=False)

    def backward(self, x):
        return (x > 0).astype(x.dtype)


class LeakyReLU(Activation):
    """
    Leaky ReLU: f(x) = x if x > 0 else alpha * x

    Args:
        alpha: Slope for negative values (default: 0.01)
    """

    def __init__(self, alpha=0.01):
        self.alpha = alpha

    def forward(self, x):
        return np.where(x > 0, x, self.alpha * x).astype(x.dtype, copy=False)

    def backward(self, x):
        return np.where(x > 0, 1.0, self.alpha).astype(x.dtype, copy=False)

    def __repr__(self):
        return f"LeakyReLU(alpha={self.alpha})"


class Sigmoid(Activation):
    """
    Sigmoid: f(x) = 1 / (1 + exp(-x))

    Derivative:
        f'(x) = f(x) * (1 - f(x))
    """

    def forward(self, x):
        # Clip for numerical stability
        x_clipped = np.clip(x, -500, 500)
        return (1.0 / (1.0 + np.exp(-x_clipped))).astype(x.dtype, copy=False)

    def backward(self, x):
        s = self.forward(x)
        return s * (1 - s)


class Tanh(Activation):
    """
    Hyperbolic Tangent: f(x) = tanh(x)

    Derivative:
        f'(x) = 1 - tanh(x)^2
    """

    def forward(self, x):
        return np.tanh(x)

    def backward(self, x):
        t = np.tanh(x)
        return 1 - t ** 2


class Softmax(Activation):
    """
    Softmax over every element of the input: f(x_i) = exp(x_i) / sum(exp(x_j))

    The max is subtracted before exp to prevent overflow.

    Softmax is not elementwise, so backward() returns the full Jacobian
    over the flattened input and backprop() applies it without building it:
        dL/dx = s * (g - sum(g * s))
    """

    def forward(self, x):
        x_shifted = x - np.max(x)
        exp_x = np.exp(x_shifted)
        return exp_x / np.sum(exp_x)

    def backward(self, x):
        s = self.forward(x).reshape(-1)
        return np.diag(s) - np.outer(s, s)

    def backprop(self, x, grad_output):
        s = self.forward(x)
        return s * (grad_output - np.sum(grad_output * s))


class Linear(Activation):
    """Identity activation: f(x) = x"""

    def forward(self, x):
        return x

    def backward(self, x):
        return np.ones_like(x)


# ====================================
# Activation Registry
# ====================================

ACTIVATIONS = {
    'relu': ReLU,
    'leaky_relu': LeakyReLU,
    'leakyrelu': LeakyReLU,
    'sigmoid': Sigmoid,
    'tanh': Tanh,
    'softmax': Softmax,
    'linear': Linear,
    'none': Linear,
}


def get_activation(name):
    """
    Resolve the activation an ActivationLayer applies.

    Names are case-insensitive and '-' is read as '_', so 'Leaky-ReLU'
    and 'leaky_relu' pick the same class. None means identity.

    Args:
        name: Key of ACTIVATIONS, an Activation instance, or None

    Returns:
        Activation instance

    Example:
        >>> act = get_activation('relu')
        >>> x = np.array([-1.0, 0.0, 2.0]).reshape(1, 1, 3)    # Tensor3D.data layout
        >>> act(x)[0, 0]
        array([0., 0., 2.])
    """
    if isinstance(name, Activation):
        return name

    if name is None:
        return Linear()

    name_lower = name.lower().replace('-', '_')
    if name_lower not in ACTIVATIONS:
        available = ', '.join(ACTIVATIONS.keys())
        raise ValueError(f"Unknown activation '{name}'. Available: {available}")

    return ACTIVATIONS[name_lower]()
