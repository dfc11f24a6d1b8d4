"""
PyTorch Reference
=================

Converts a Noether chain into equivalent torch.nn modules so results can be
cross-checked against PyTorch.

Layout conversion:
    Noether tensor  [x, y, z]           (width, height, depth)
    torch tensor    [1, C, H, W] = [1, z, y, x]

    Conv filter d   [fx, fy, fd]  ->  Conv2d.weight[d, fd, fy, fx]
    FC filter i     flat (x, y, z) order  ->  Linear.weight[i, :]

Linear layers flatten in Noether's (x, y, z) order, so the NCHW tensor is
permuted to (1, W, H, C) before flattening.

Requires torch (`pip install noether[torch]`).
"""

import numpy as np
import torch
import torch.nn as nn

from .activations import LeakyReLU, Linear, ReLU, Sigmoid, Softmax, Tanh
from .layers import (ActivationLayer, ConvLayer, FullyConnectedLayer,
                     InputLayer, MaxPoolLayer)
from .tensor import Tensor3D


def to_torch(tensor):
    """Tensor3D or [x, y, z] array -> torch tensor of shape (1, z, y, x)."""
    if isinstance(tensor, Tensor3D):
        tensor = tensor.data
    return torch.from_numpy(np.ascontiguousarray(np.asarray(tensor).transpose(2, 1, 0)[None]))


def from_torch(output):
    """Torch tensor of shape (1, C, H, W) -> [x, y, z] array."""
    return output.detach().cpu().numpy()[0].transpose(2, 1, 0)


def _torch_dtype(layer):
    return getattr(torch, layer.dtype.name)


def conv_to_torch(layer):
    """Build an nn.Conv2d with the weights and bias of a ConvLayer."""
    inz = layer.input_layer.dims()[2]
    conv = nn.Conv2d(inz, layer.out_depth, kernel_size=layer.filter_size,
                     stride=layer.stride, padding=layer.pad, dtype=_torch_dtype(layer))

    weights = np.stack([f.data for f in layer.filters])    # (D, fx, fy, fd)
    with torch.no_grad():
        conv.weight.copy_(torch.from_numpy(np.ascontiguousarray(weights.transpose(0, 3, 2, 1))))
        conv.bias.copy_(torch.from_numpy(layer.bias.flat.copy()))
    return conv


def fc_to_torch(layer):
    """Build an nn.Linear with the weights and bias of a FullyConnectedLayer."""
    linear = nn.Linear(layer.num_inputs, layer.out_depth, dtype=_torch_dtype(layer))

    weights = np.stack([f.flat for f in layer.filters])    # (D, N)
    with torch.no_grad():
        linear.weight.copy_(torch.from_numpy(weights))
        linear.bias.copy_(torch.from_numpy(layer.bias.flat.copy()))
    return linear


class FlattenXYZ(nn.Module):
    """Flatten (1, C, H, W) in Noether's x-outer, z-inner order."""

    def forward(self, x):
        return x.permute(0, 3, 2, 1).reshape(x.shape[0], -1)


class Unflatten1x1(nn.Module):
    """(1, D) -> (1, D, 1, 1), the torch layout of a (1, 1, D) tensor."""

    def forward(self, x):
        return x.reshape(x.shape[0], -1, 1, 1)


class SoftmaxAll(nn.Module):
    """Softmax over every element of the tensor."""

    def forward(self, x):
        return torch.softmax(x.reshape(x.shape[0], -1), dim=1).reshape(x.shape)


def activation_to_torch(layer):
    act = layer.activation
    if isinstance(act, ReLU):
        return nn.ReLU()
    if isinstance(act, LeakyReLU):
        return nn.LeakyReLU(act.alpha)
    if isinstance(act, Sigmoid):
        return nn.Sigmoid()
    if isinstance(act, Tanh):
        return nn.Tanh()
    if isinstance(act, Softmax):
        return SoftmaxAll()
    if isinstance(act, Linear):
        return nn.Identity()
    raise ValueError(f"No torch equivalent for activation {act!r}")


def network_to_torch(network):
    """
    Build an nn.Sequential that computes the same function as a Network.

    Example:
        >>> model = network_to_torch(net)
        >>> out = from_torch(model(to_torch(x)))
    """
    modules = []

    for layer in network.layers:
        if isinstance(layer, InputLayer):
            continue
        elif isinstance(layer, ConvLayer):
            modules.append(conv_to_torch(layer))
        elif isinstance(layer, FullyConnectedLayer):
            modules.extend([FlattenXYZ(), fc_to_torch(layer), Unflatten1x1()])
        elif isinstance(layer, ActivationLayer):
            modules.append(activation_to_torch(layer))
        elif isinstance(layer, MaxPoolLayer):
            modules.append(nn.MaxPool2d(layer.pool_size, layer.stride))
        else:
            raise ValueError(f"No torch equivalent for layer {layer!r}")

    return nn.Sequential(*modules)


def torch_forward(network, x):
    """Run x through the torch equivalent of network; returns an [x, y, z] array."""
    model = network_to_torch(network)
    model.eval()
    with torch.no_grad():
        return from_torch(model(to_torch(x)))
