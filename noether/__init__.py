"""
Noether
=======

A minimal compute-graph engine for feed-forward neural networks, using only
NumPy. Layers transform fixed-shape 3D tensors and are wired into a chain:
- Tensor3D: (x, y, z) storage with bounds checks and shape arithmetic
- ConvLayer and FullyConnectedLayer: the two learned transforms
- ActivationLayer, MaxPoolLayer, InputLayer
- Network: builds the chain, runs forward and backward passes

The PyTorch cross-check lives in noether.torch_reference and is not imported
here.
"""

from .tensor import Tensor3D, FLATTEN_ORDER
from .activations import ReLU, LeakyReLU, Sigmoid, Tanh, Softmax, Linear, get_activation
from .layers import Layer, InputLayer, ConvLayer, FullyConnectedLayer
from .layers import ActivationLayer, MaxPoolLayer
from .network import Network, benchmark_inference
from . import visualizations

__version__ = "1.0.0"
__all__ = [
    # Tensor
    'Tensor3D', 'FLATTEN_ORDER',
    # Activations
    'ReLU', 'LeakyReLU', 'Sigmoid', 'Tanh', 'Softmax', 'Linear', 'get_activation',
    # Layers
    'Layer', 'InputLayer', 'ConvLayer', 'FullyConnectedLayer',
    'ActivationLayer', 'MaxPoolLayer',
    # Chain
    'Network', 'benchmark_inference',
]
