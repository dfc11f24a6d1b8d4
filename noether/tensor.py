"""
Tensor3D - Fixed-Shape 3D Storage
=================================

The data structure every layer reads from and writes to.

A Tensor3D owns one contiguous NumPy buffer addressed by (x, y, z):
- x: width  (sx)
- y: height (sy)
- z: depth  (sz), the fastest varying coordinate

Flat index of (x, y, z):
    i = (x * sy + y) * sz + z

This is plain C order over (x, y, z). The same order is used when a
fully-connected layer flattens its input, see FLATTEN_ORDER.
"""

import numbers

import numpy as np


# Iteration order used for flat access: x outer, y middle, z inner.
FLATTEN_ORDER = ('x', 'y', 'z')

# Array axes of an [x, y, z] buffer, outermost first, in FLATTEN_ORDER
FLATTEN_AXES = tuple('xyz'.index(axis) for axis in FLATTEN_ORDER)

DEFAULT_DTYPE = np.float32


def flatten(array):
    """1D copy of an [x, y, z] array, iterated in FLATTEN_ORDER."""
    return array.transpose(FLATTEN_AXES).reshape(-1)


def unflatten(flat, dims):
    """Inverse of flatten: lay a FLATTEN_ORDER vector out as an [x, y, z] array."""
    ordered_dims = tuple(dims[axis] for axis in FLATTEN_AXES)
    return np.asarray(flat).reshape(ordered_dims).transpose(np.argsort(FLATTEN_AXES))


def _check_dim(name, value):
    if isinstance(value, bool) or not isinstance(value, numbers.Integral):
        raise ValueError(f"Tensor dimension '{name}' must be an integer, got {value!r}")
    if value < 0:
        raise ValueError(f"Tensor dimension '{name}' must be non-negative, got {value}")
    return int(value)


class Tensor3D:
    """
    3D array of numeric elements with explicit width, height and depth.

    Args:
        sx: Width
        sy: Height
        sz: Depth
        dtype: NumPy element type (default: float32)

    Element access:
        t.get(x, y, z)        -> element at (x, y, z)
        t.get(i)              -> i-th element in flat order
        t[x, y, z] / t[i]     -> same, via indexing
        t.set(x, y, z, v)     -> write

    get/set do not validate indices. Callers that may step outside the
    tensor (e.g. convolution windows) must test is_in_bounds() first.
    """

    def __init__(self, sx=0, sy=0, sz=0, dtype=DEFAULT_DTYPE):
        self.dtype = np.dtype(dtype)
        self._data = None
        self.reset(sx, sy, sz)

    @classmethod
    def from_array(cls, array, dtype=None):
        """Build a tensor holding a copy of a 3D array indexed [x, y, z]."""
        array = np.asarray(array)
        if array.ndim != 3:
            raise ValueError(f"Expected a 3D array, got shape {array.shape}")
        tensor = cls(*array.shape, dtype=dtype if dtype is not None else array.dtype)
        tensor._data[...] = array
        return tensor

    def reset(self, sx, sy, sz):
        """
        Reallocate storage for exactly sx * sy * sz zeroed elements.

        All three dimensions change together. Previous contents are discarded.
        """
        sx = _check_dim('sx', sx)
        sy = _check_dim('sy', sy)
        sz = _check_dim('sz', sz)
        self._data = np.zeros((sx, sy, sz), dtype=self.dtype)

    def dims(self):
        """Return (sx, sy, sz)."""
        return self._data.shape

    @property
    def shape(self):
        return self._data.shape

    def size(self):
        """Number of elements: sx * sy * sz."""
        return self._data.size

    @property
    def data(self):
        """The underlying (sx, sy, sz) array."""
        return self._data

    @property
    def flat(self):
        """1D view of the buffer in FLATTEN_ORDER."""
        return self._data.reshape(-1)

    def is_in_bounds(self, x, y):
        """
        Test whether (x, y) lies within the first two dimensions.

        Works on scalars and, elementwise, on integer arrays.
        """
        sx, sy, _ = self._data.shape
        return (0 <= x) & (x < sx) & (0 <= y) & (y < sy)

    def get(self, *index):
        if len(index) == 1:
            return self.flat[index[0]]
        x, y, z = index
        return self._data[x, y, z]

    def set(self, *args):
        *index, value = args
        if len(index) == 1:
            self.flat[index[0]] = value
        else:
            x, y, z = index
            self._data[x, y, z] = value

    def __getitem__(self, index):
        if isinstance(index, tuple):
            return self.get(*index)
        return self.get(index)

    def __setitem__(self, index, value):
        if isinstance(index, tuple):
            self.set(*index, value)
        else:
            self.set(index, value)

    def fill(self, value):
        self._data.fill(value)
        return self

    def assign(self, values):
        """Overwrite all elements from an array or tensor of the same shape."""
        if isinstance(values, Tensor3D):
            values = values.data
        values = np.asarray(values)
        if values.shape != self._data.shape:
            raise ValueError(f"Shape mismatch: expected {self._data.shape}, got {values.shape}")
        self._data[...] = values
        return self

    def copy(self):
        return Tensor3D.from_array(self._data, dtype=self.dtype)

    def zeros_like(self):
        return Tensor3D(*self._data.shape, dtype=self.dtype)

    def __len__(self):
        return self._data.size

    def __repr__(self):
        sx, sy, sz = self._data.shape
        return f"Tensor3D({sx}, {sy}, {sz}, dtype={self.dtype.name})"
