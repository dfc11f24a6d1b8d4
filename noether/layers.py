"""
Noether Layers
==============

Nodes of the compute chain. Each layer owns an output Tensor3D and holds a
reference to exactly one predecessor layer (except InputLayer, which starts
the chain). A layer's output shape is fixed at construction from the
predecessor's shape and the layer's hyperparameters.

Contract shared by every layer:
- name:            human-readable label
- get_output():    the Tensor3D this layer writes
- dims(), size():  shape and element count of that output
- forward():       recompute the output from the predecessor's output
- backward(grad):  take dL/d(output), store parameter gradients in
                   self.grads, return dL/d(input) as a Tensor3D

Layers implemented:
- InputLayer: holds data fed in by the driver
- ConvLayer: bank of filters over spatial windows
- FullyConnectedLayer: one dense filter per output unit
- ActivationLayer: elementwise non-linearity
- MaxPoolLayer: spatial max over windows

Gradients are overwritten, not accumulated, by each backward() call.
"""

import numbers

import numpy as np

from .activations import get_activation
from .tensor import Tensor3D, DEFAULT_DTYPE, flatten, unflatten


def _positive_int(name, value):
    if isinstance(value, bool) or not isinstance(value, numbers.Integral) or value < 1:
        raise ValueError(f"'{name}' must be a positive integer, got {value!r}")
    return int(value)


def _sequential_sum(products):
    """
    Sum along the last axis strictly left to right.

    np.sum uses pairwise summation, which changes rounding. cumsum adds one
    term at a time, so element k of the result is (((0 + p0) + p1) + ...) + pk
    exactly as a scalar loop would compute it.
    """
    return np.cumsum(products, axis=-1)[..., -1]


def _init_filters(count, shape, fan_in, weight_init, dtype):
    if weight_init == 'he':
        scale = np.sqrt(2.0 / fan_in)
    elif weight_init == 'xavier':
        scale = np.sqrt(1.0 / fan_in)
    elif weight_init == 'zeros':
        return [Tensor3D(*shape, dtype=dtype) for _ in range(count)]
    else:
        raise ValueError(f"Unknown weight_init '{weight_init}'. Available: he, xavier, zeros")

    return [Tensor3D.from_array(np.random.randn(*shape) * scale, dtype=dtype)
            for _ in range(count)]


class Layer:
    """Base class for all layers."""

    default_name = 'layer'

    def __init__(self, input_layer=None, name=None):
        self.input_layer = input_layer
        self.name = name if name is not None else self.default_name
        self.output = Tensor3D()
        self.params = {}    # Trainable parameters
        self.grads = {}     # Gradients of parameters
        self.cache = {}

    def get_output(self):
        """The output tensor of this node."""
        return self.output

    def dims(self):
        return self.get_output().dims()

    def size(self):
        return self.get_output().size()

    @property
    def dtype(self):
        return self.output.dtype

    def forward(self):
        """Forward pass."""
        raise NotImplementedError

    def backward(self, grad_output):
        """Backward pass."""
        raise NotImplementedError

    def num_params(self):
        """Number of trainable scalars."""
        total = 0
        for param in self.params.values():
            if isinstance(param, list):
                total += sum(t.size() for t in param)
            else:
                total += param.size()
        return total

    def _require_input(self):
        if not isinstance(self.input_layer, Layer):
            raise ValueError(f"{type(self).__name__} requires an input layer, got {self.input_layer!r}")
        if 0 in self.input_layer.dims():
            raise ValueError(f"Input layer '{self.input_layer.name}' has empty output {self.input_layer.dims()}")

    def _check_grad(self, grad_output):
        """Return grad_output as an array shaped like this layer's output."""
        if isinstance(grad_output, Tensor3D):
            grad_output = grad_output.data
        grad_output = np.asarray(grad_output, dtype=self.dtype)
        if grad_output.shape != self.dims():
            raise ValueError(f"{self.name}: gradient shape {grad_output.shape} "
                             f"does not match output shape {self.dims()}")
        return grad_output

    def _cached(self, key):
        if key not in self.cache:
            raise RuntimeError(f"{self.name}: backward() called before forward()")
        return self.cache[key]

    def __repr__(self):
        return f"{type(self).__name__}(name={self.name!r})"


class InputLayer(Layer):
    """
    Start of the chain: an output tensor the driver writes into.

    forward() does nothing; the output is whatever set_input() stored last.

    Args:
        sx, sy, sz: Input shape
        dtype: Element type inherited by every layer built on top
    """

    default_name = 'input'

    def __init__(self, sx, sy, sz, dtype=DEFAULT_DTYPE, name=None):
        super().__init__(None, name)
        self.output = Tensor3D(sx, sy, sz, dtype=dtype)

    def set_input(self, values):
        """Copy a (sx, sy, sz) array or Tensor3D into the output."""
        self.output.assign(values)

    def forward(self):
        pass

    def backward(self, grad_output):
        grad = Tensor3D.from_array(self._check_grad(grad_output), dtype=self.dtype)
        self.grads['input'] = grad
        return grad

    def __repr__(self):
        return f"InputLayer{self.dims()}"


class ConvLayer(Layer):
    """
    2D convolution over a (W, H, Cin) input.

    Args:
        input_layer: Predecessor layer
        out_depth: Number of filters D
        filter_size: Spatial filter size F
        stride: Step S between windows (default: 1)
        pad: Zero padding P; only 0 is supported
        weight_init: 'he', 'xavier' or 'zeros'

    Output shape: (outW, outH, D) with
        outW = (W + 2P - F) // S + 1
        outH = (H + 2P - F) // S + 1

    Each output element is accumulated in a fixed order:
        sum = 0
        for fy: for fx: for fd:  sum += filter[fx, fy, fd] * input[x+fx, y+fy, fd]
        sum += bias[d]
    Taps that fall outside the input (is_in_bounds is False) are skipped.

    The forward pass gathers all windows at once (im2col) and adds one tap
    column at a time, so it vectorizes across output elements without
    reordering any single element's accumulation.
    """

    default_name = 'conv'

    def __init__(self, input_layer, out_depth, filter_size, stride=1, pad=0,
                 weight_init='he', name=None):
        super().__init__(input_layer, name)
        self._require_input()

        if pad != 0:
            raise ValueError(f"Unsupported pad size {pad!r}; only pad=0 is implemented")

        self.out_depth = _positive_int('out_depth', out_depth)
        self.filter_size = _positive_int('filter_size', filter_size)
        self.stride = _positive_int('stride', stride)
        self.pad = 0

        inx, iny, inz = input_layer.dims()
        outsx = (inx + self.pad * 2 - self.filter_size) // self.stride + 1
        outsy = (iny + self.pad * 2 - self.filter_size) // self.stride + 1
        if outsx < 1 or outsy < 1:
            raise ValueError(f"Filter size {self.filter_size} does not fit input {inx}x{iny} "
                             f"(output would be {outsx}x{outsy})")

        dtype = input_layer.dtype
        self.output = Tensor3D(outsx, outsy, self.out_depth, dtype=dtype)
        self.bias = Tensor3D(1, 1, self.out_depth, dtype=dtype)
        self.filters = _init_filters(self.out_depth, (self.filter_size, self.filter_size, inz),
                                     self.filter_size * self.filter_size * inz, weight_init, dtype)

        self.params['filters'] = self.filters
        self.params['bias'] = self.bias

        self._input_dims = (inx, iny, inz)
        self._taps = self._window_taps(input_layer.get_output(), outsx, outsy)

    def _window_taps(self, input_tensor, outsx, outsy):
        """
        Input coordinates of every (output position, filter tap) pair.

        Returns X, Y shaped (outW, outH, F, F) with axes (ax, ay, fy, fx) and
        a mask of the taps that land inside the input.
        """
        offsets = np.arange(self.filter_size)
        origin_x = np.arange(outsx) * self.stride - self.pad
        origin_y = np.arange(outsy) * self.stride - self.pad

        X = origin_x[:, None, None, None] + offsets[None, None, None, :]
        Y = origin_y[None, :, None, None] + offsets[None, None, :, None]
        X, Y = np.broadcast_arrays(X, Y)

        inside = input_tensor.is_in_bounds(X, Y)
        return X, Y, inside

    def _im2col(self, x):
        """
        Gather input windows into rows.

        Returns:
            col: Shape (outW * outH, F * F * Cin), columns in (fy, fx, fd) order
        """
        X, Y, inside = self._taps
        col = np.zeros(X.shape + (x.shape[2],), dtype=x.dtype)
        col[inside] = x[X[inside], Y[inside]]
        return col.reshape(X.shape[0] * X.shape[1], -1)

    def _filter_matrix(self):
        """Filters as (D, F * F * Cin), columns in (fy, fx, fd) order."""
        stacked = np.stack([f.data for f in self.filters])     # (D, fx, fy, fd)
        return stacked.transpose(0, 2, 1, 3).reshape(self.out_depth, -1)

    def forward(self):
        outx, outy, outz = self.output.dims()
        x = self.input_layer.get_output().data
        assert x.shape == self._input_dims, "Invalid input shape"

        col = self._im2col(x)
        W_col = self._filter_matrix()

        # Taps in (fy, fx, fd) order, each added to every (d, position) at once
        sums = np.zeros((outz, col.shape[0]), dtype=np.result_type(W_col, col))
        for k in range(col.shape[1]):
            sums += W_col[:, k, None] * col[None, :, k]
        sums = sums + self.bias.flat[:, None]

        self.output.data[...] = sums.reshape(outz, outx, outy).transpose(1, 2, 0)
        self.cache['col'] = col
        return self.output

    def backward(self, grad_output):
        """
        dL/dW[d] = sum over positions of grad[ax, ay, d] * window(ax, ay)
        dL/db[d] = sum over positions of grad[ax, ay, d]
        dL/dX    = every window's share of grad @ W scattered back to the input
        """
        grad = self._check_grad(grad_output)
        col = self._cached('col')
        F = self.filter_size
        inx, iny, inz = self.input_layer.dims()

        grad_col = grad.reshape(-1, self.out_depth)     # (P, D)
        W_col = self._filter_matrix()

        dW = (grad_col.T @ col).reshape(self.out_depth, F, F, inz).transpose(0, 2, 1, 3)
        self.grads['filters'] = [Tensor3D.from_array(dW[d], dtype=self.dtype)
                                 for d in range(self.out_depth)]
        self.grads['bias'] = Tensor3D.from_array(
            grad_col.sum(axis=0).reshape(1, 1, self.out_depth), dtype=self.dtype)

        X, Y, inside = self._taps
        dcol = (grad_col @ W_col).reshape(X.shape + (inz,))
        dx = np.zeros((inx, iny, inz), dtype=self.dtype)
        np.add.at(dx, (X[inside], Y[inside]), dcol[inside])

        return Tensor3D.from_array(dx, dtype=self.dtype)

    def __repr__(self):
        return (f"ConvLayer(out_depth={self.out_depth}, filter_size={self.filter_size}, "
                f"stride={self.stride}, pad={self.pad})")


class FullyConnectedLayer(Layer):
    """
    Fully connected layer.

    Flattens the input in FLATTEN_ORDER (x outer, y middle, z inner) and
    takes, for each output unit i, the dot product with filter i plus bias i.
    Filter i is stored as a (1, 1, N) tensor whose flat index matches the
    flattened input index.

    Args:
        input_layer: Predecessor layer
        out_depth: Number of output units D
        weight_init: 'he', 'xavier' or 'zeros'

    Output shape: (1, 1, D)
    """

    default_name = 'fc'

    def __init__(self, input_layer, out_depth, weight_init='he', name=None):
        super().__init__(input_layer, name)
        self._require_input()

        self.out_depth = _positive_int('out_depth', out_depth)
        self.num_inputs = input_layer.size()

        dtype = input_layer.dtype
        self.output = Tensor3D(1, 1, self.out_depth, dtype=dtype)
        self.bias = Tensor3D(1, 1, self.out_depth, dtype=dtype)
        self.filters = _init_filters(self.out_depth, (1, 1, self.num_inputs),
                                     self.num_inputs, weight_init, dtype)

        self.params['filters'] = self.filters
        self.params['bias'] = self.bias

    def _weight_matrix(self):
        return np.stack([f.flat for f in self.filters])     # (D, N)

    def forward(self):
        flat = flatten(self.input_layer.get_output().data)
        assert flat.size == self.num_inputs, "Invalid index"

        products = self._weight_matrix() * flat[None, :]
        sums = _sequential_sum(products) + self.bias.flat

        self.output.flat[:] = sums
        self.cache['input'] = flat.copy()
        return self.output

    def backward(self, grad_output):
        """
        dL/dW[i] = grad[i] * x
        dL/db    = grad
        dL/dx    = W.T @ grad, reshaped to the input's (x, y, z) layout
        """
        grad = self._check_grad(grad_output).reshape(-1)
        x = self._cached('input')

        dW = grad[:, None] * x[None, :]
        self.grads['filters'] = [Tensor3D.from_array(dW[i].reshape(1, 1, -1), dtype=self.dtype)
                                 for i in range(self.out_depth)]
        self.grads['bias'] = Tensor3D.from_array(grad.reshape(1, 1, -1), dtype=self.dtype)

        dx = grad @ self._weight_matrix()
        return Tensor3D.from_array(unflatten(dx, self.input_layer.dims()), dtype=self.dtype)

    def __repr__(self):
        return f"FullyConnectedLayer({self.num_inputs}, {self.out_depth})"


class ActivationLayer(Layer):
    """
    Activation layer wrapper.

    Applies an activation function from activations.py to every element.
    Output shape equals input shape.

    Args:
        input_layer: Predecessor layer
        activation: Name or Activation instance (default: 'relu')
    """

    default_name = 'activation'

    def __init__(self, input_layer, activation='relu', name=None):
        super().__init__(input_layer, name)
        self._require_input()

        self.activation = get_activation(activation)
        self.activation_name = activation if isinstance(activation, str) else repr(self.activation)
        self.output = Tensor3D(*input_layer.dims(), dtype=input_layer.dtype)

    def forward(self):
        x = self.input_layer.get_output().data.copy()
        self.output.assign(self.activation.forward(x))
        self.cache['x'] = x
        return self.output

    def backward(self, grad_output):
        """Multiply by activation derivative."""
        grad = self._check_grad(grad_output)
        x = self._cached('x')
        return Tensor3D.from_array(self.activation.backprop(x, grad), dtype=self.dtype)

    def __repr__(self):
        return f"ActivationLayer({self.activation_name})"


class MaxPoolLayer(Layer):
    """
    Max pooling over F x F spatial windows, per depth slice.

    Args:
        input_layer: Predecessor layer
        pool_size: Window size F (default: 2)
        stride: Stride S (default: same as pool_size)

    Output shape: ((W - F) // S + 1, (H - F) // S + 1, C)

    Backprop: gradient flows only to the max element in each window
    (first maximum in (fy, fx) order on ties).
    """

    default_name = 'maxpool'

    def __init__(self, input_layer, pool_size=2, stride=None, name=None):
        super().__init__(input_layer, name)
        self._require_input()

        self.pool_size = _positive_int('pool_size', pool_size)
        self.stride = _positive_int('stride', stride if stride is not None else pool_size)

        inx, iny, inz = input_layer.dims()
        outsx = (inx - self.pool_size) // self.stride + 1
        outsy = (iny - self.pool_size) // self.stride + 1
        if outsx < 1 or outsy < 1:
            raise ValueError(f"Pool size {self.pool_size} does not fit input {inx}x{iny}")

        self.output = Tensor3D(outsx, outsy, inz, dtype=input_layer.dtype)

    def _windows(self, x):
        """View of all windows: (outW, outH, C, fy, fx), no copy."""
        outx, outy, outz = self.output.dims()
        F, S = self.pool_size, self.stride
        shape = (outx, outy, outz, F, F)
        strides = (
            x.strides[0] * S,   # output x (strided)
            x.strides[1] * S,   # output y (strided)
            x.strides[2],       # depth
            x.strides[1],       # window y
            x.strides[0],       # window x
        )
        return np.lib.stride_tricks.as_strided(x, shape=shape, strides=strides, writeable=False)

    def forward(self):
        outx, outy, outz = self.output.dims()
        x = np.ascontiguousarray(self.input_layer.get_output().data)

        windows_flat = self._windows(x).reshape(outx, outy, outz, -1)
        self.output.data[...] = np.max(windows_flat, axis=-1)
        self.cache['max_indices'] = np.argmax(windows_flat, axis=-1)
        return self.output

    def backward(self, grad_output):
        """Route gradient to max positions only."""
        grad = self._check_grad(grad_output)
        max_indices = self._cached('max_indices')
        outx, outy, outz = self.output.dims()

        abs_x = np.arange(outx).reshape(outx, 1, 1) * self.stride + max_indices % self.pool_size
        abs_y = np.arange(outy).reshape(1, outy, 1) * self.stride + max_indices // self.pool_size
        z_idx = np.broadcast_to(np.arange(outz).reshape(1, 1, outz), max_indices.shape)

        dx = np.zeros(self.input_layer.dims(), dtype=self.dtype)
        np.add.at(dx, (abs_x, abs_y, z_idx), grad)
        return Tensor3D.from_array(dx, dtype=self.dtype)

    def __repr__(self):
        return f"MaxPoolLayer(pool_size={self.pool_size}, stride={self.stride})"
