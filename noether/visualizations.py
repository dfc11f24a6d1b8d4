"""
Visualization Utilities
=======================

matplotlib views of tensors held by a network:
- Feature maps: one image per depth slice of a Tensor3D
- Convolutional filters
- Output shapes along a chain

Tensors are indexed [x, y, z]; images are drawn with y as rows and x as
columns, so each depth slice is transposed before imshow.
"""

import numpy as np
import matplotlib.pyplot as plt

from .layers import ConvLayer, Layer
from .tensor import Tensor3D


def _slice_image(array, z):
    return array[:, :, z].T


def _grid(n_items, figsize):
    n_cols = int(np.ceil(np.sqrt(n_items)))
    n_rows = int(np.ceil(n_items / n_cols))

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize)
    return fig, np.array(axes).flatten()


def visualize_feature_maps(feature_maps, max_maps=16, figsize=(12, 12), save_path=None):
    """
    Visualize the depth slices of a layer output.

    Args:
        feature_maps: Tensor3D, Layer, or array of shape (sx, sy, sz)
        max_maps: Maximum number of slices to display
        figsize: Figure size
        save_path: Path to save figure
    """
    if isinstance(feature_maps, Layer):
        feature_maps = feature_maps.get_output()
    if isinstance(feature_maps, Tensor3D):
        feature_maps = feature_maps.data

    n_maps = min(feature_maps.shape[2], max_maps)
    fig, axes = _grid(n_maps, figsize)

    for i in range(n_maps):
        axes[i].imshow(_slice_image(feature_maps, i), cmap='viridis')
        axes[i].set_title(f'Depth {i}', fontsize=8)
        axes[i].axis('off')

    # Hide unused subplots
    for i in range(n_maps, len(axes)):
        axes[i].axis('off')

    plt.suptitle('Feature Maps', fontsize=14)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Feature maps saved to {save_path}")

    plt.show()
    return fig


def visualize_filters(layer, max_filters=32, figsize=(12, 8), save_path=None):
    """
    Visualize convolutional filter weights.

    Args:
        layer: ConvLayer, or array of shape (D, F, F, Cin)
        max_filters: Maximum number of filters to display
        figsize: Figure size
        save_path: Path to save figure
    """
    if isinstance(layer, ConvLayer):
        filters = np.stack([f.data for f in layer.filters])
    else:
        filters = np.asarray(layer)

    n_filters = min(filters.shape[0], max_filters)
    fig, axes = _grid(n_filters, figsize)

    for i in range(n_filters):
        # Average across input depth
        filter_img = np.mean(filters[i], axis=2).T

        # Normalize for visualization
        filter_img = (filter_img - filter_img.min()) / (filter_img.max() - filter_img.min() + 1e-8)

        axes[i].imshow(filter_img, cmap='gray')
        axes[i].set_title(f'Filter {i}', fontsize=8)
        axes[i].axis('off')

    for i in range(n_filters, len(axes)):
        axes[i].axis('off')

    plt.suptitle('Convolutional Filters', fontsize=14)
    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Filters visualization saved to {save_path}")

    plt.show()
    return fig


def plot_output_sizes(network, figsize=(10, 5), save_path=None):
    """
    Bar chart of the output element count of every layer in a chain.

    Args:
        network: Network
        figsize: Figure size
        save_path: Path to save figure
    """
    names = [layer.name for layer in network.layers]
    sizes = [layer.size() for layer in network.layers]

    fig, ax = plt.subplots(figsize=figsize)
    ax.bar(np.arange(len(sizes)), sizes, color='steelblue')
    ax.set_xticks(np.arange(len(names)))
    ax.set_xticklabels(names, rotation=45, ha='right')
    ax.set_ylabel('Output elements', fontsize=12)
    ax.set_title('Output Size per Layer', fontsize=14)
    ax.grid(True, axis='y', alpha=0.3)

    plt.tight_layout()

    if save_path:
        plt.savefig(save_path, dpi=150, bbox_inches='tight')
        print(f"Output sizes plot saved to {save_path}")

    plt.show()
    return fig
