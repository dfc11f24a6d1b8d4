"""
Network - Chain Driver
======================

Builds a chain of layers in construction order and runs it:
- forward(x): feed the input layer, then call forward() on every layer in order
- backward(grad): call backward() on every layer in reverse
- predict_many: forward over a sequence of samples
- summary / get_filters / get_feature_maps: inspection

Layers are referenced by their position in the chain. Position 0 is always
the InputLayer.

Example:
    >>> net = Network(input_shape=(28, 28, 1))
    >>> net.add_conv(out_depth=8, filter_size=3)
    1
    >>> net.add_activation('relu')
    2
    >>> net.add_max_pool(pool_size=2)
    3
    >>> net.add_fully_connected(10)
    4
    >>> out = net.forward(np.random.rand(28, 28, 1))
    >>> out.dims()
    (1, 1, 10)
"""

import time

import numpy as np
from tqdm import tqdm

from .layers import (InputLayer, ConvLayer, FullyConnectedLayer,
                     ActivationLayer, MaxPoolLayer)
from .tensor import Tensor3D, DEFAULT_DTYPE


class Network:
    """
    Feed-forward chain of layers.

    Args:
        input_shape: (sx, sy, sz) of the input tensor
        dtype: Element type used by every layer (default: float32)
    """

    def __init__(self, input_shape, dtype=DEFAULT_DTYPE):
        self.input_shape = tuple(input_shape)
        self.layers = [InputLayer(*self.input_shape, dtype=dtype)]

    @property
    def input_layer(self):
        return self.layers[0]

    @property
    def output_layer(self):
        return self.layers[-1]

    def __len__(self):
        return len(self.layers)

    def __getitem__(self, index):
        return self.layers[index]

    def add(self, layer_cls, *args, **kwargs):
        """
        Construct layer_cls on top of the current last layer.

        Returns:
            Index of the new layer in the chain
        """
        index = len(self.layers)
        kwargs.setdefault('name', f"{layer_cls.default_name}{index}")
        layer = layer_cls(self.output_layer, *args, **kwargs)
        self.layers.append(layer)
        return index

    def add_conv(self, out_depth, filter_size, stride=1, pad=0, weight_init='he'):
        return self.add(ConvLayer, out_depth, filter_size, stride=stride, pad=pad,
                        weight_init=weight_init)

    def add_fully_connected(self, out_depth, weight_init='he'):
        return self.add(FullyConnectedLayer, out_depth, weight_init=weight_init)

    def add_activation(self, activation='relu'):
        return self.add(ActivationLayer, activation=activation)

    def add_max_pool(self, pool_size=2, stride=None):
        return self.add(MaxPoolLayer, pool_size=pool_size, stride=stride)

    def forward(self, x=None):
        """
        Forward pass through the chain.

        Args:
            x: Input array or Tensor3D of input_shape. If None, the input
               layer keeps its current contents.

        Returns:
            Output tensor of the last layer
        """
        if x is not None:
            self.input_layer.set_input(x)
        for layer in self.layers:
            layer.forward()
        return self.output_layer.get_output()

    def backward(self, grad):
        """
        Backward pass through the chain.

        Args:
            grad: Gradient w.r.t. the last layer's output

        Returns:
            Gradient w.r.t. the input tensor
        """
        for layer in reversed(self.layers):
            grad = layer.backward(grad)
        return grad

    def predict_many(self, inputs, verbose=False):
        """
        Run forward over a sequence of input samples.

        Args:
            inputs: Iterable of arrays shaped like input_shape, or an array
                    of shape (N, sx, sy, sz)
            verbose: Show a progress bar

        Returns:
            Array of outputs, shape (N, *output dims)
        """
        samples = tqdm(inputs, desc="Forward") if verbose else inputs

        outputs = []
        for x in samples:
            outputs.append(self.forward(x).data.copy())

        if not outputs:
            return np.zeros((0,) + self.output_layer.dims(), dtype=self.output_layer.dtype)
        return np.stack(outputs)

    def get_feature_maps(self, x, layer_index=None):
        """
        Get outputs of convolutional layers for one input.

        Args:
            x: Input sample
            layer_index: Specific layer index, or None for all conv layers

        Returns:
            List of dicts with 'layer_index', 'layer', 'feature_map'
        """
        self.forward(x)

        feature_maps = []
        for i, layer in enumerate(self.layers):
            if isinstance(layer, ConvLayer):
                if layer_index is None or i == layer_index:
                    feature_maps.append({
                        'layer_index': i,
                        'layer': layer,
                        'feature_map': layer.get_output().copy()
                    })

        return feature_maps

    def get_filters(self, layer_index=None):
        """
        Get filter weights from convolutional layers.

        Returns:
            List of dicts with 'layer_index', 'layer', 'weights', where
            'weights' has shape (D, F, F, Cin)
        """
        filters = []

        for i, layer in enumerate(self.layers):
            if isinstance(layer, ConvLayer):
                if layer_index is None or i == layer_index:
                    filters.append({
                        'layer_index': i,
                        'layer': layer,
                        'weights': np.stack([f.data for f in layer.filters])
                    })

        return filters

    def summary(self):
        """Print model summary and return the total parameter count."""
        print("\n" + "=" * 70)
        print("Network Summary")
        print("=" * 70)
        print(f"{'#':>3}  {'Layer':<40} {'Output':<15} Params")
        print("-" * 70)

        total_params = 0

        for i, layer in enumerate(self.layers):
            n_params = layer.num_params()
            total_params += n_params
            print(f"{i:3d}. {str(layer):<40} {str(layer.dims()):<15} {n_params:,}")

        print("-" * 70)
        print(f"Total trainable parameters: {total_params:,}")
        print("=" * 70 + "\n")

        return total_params

    def __repr__(self):
        return f"Network(input_shape={self.input_shape}, layers={len(self.layers)})"


def benchmark_inference(network, x, n_runs=100):
    """
    Benchmark forward-pass time.

    Args:
        network: Network
        x: Sample input
        n_runs: Number of runs

    Returns:
        Dictionary with timing statistics
    """
    if isinstance(x, Tensor3D):
        x = x.data

    # Warmup
    for _ in range(5):
        network.forward(x)

    times = []
    for _ in range(n_runs):
        start = time.perf_counter()
        network.forward(x)
        end = time.perf_counter()
        times.append(end - start)

    times = np.array(times) * 1000  # Convert to ms

    return {
        'mean_ms': np.mean(times),
        'std_ms': np.std(times),
        'min_ms': np.min(times),
        'max_ms': np.max(times),
        'n_runs': n_runs,
    }
