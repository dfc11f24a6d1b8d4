"""
Tests for Tensor3D
==================

Shape bookkeeping, reset, bounds predicate and element access.
"""

import numpy as np
import pytest
import sys
import os

sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from noether.tensor import Tensor3D, FLATTEN_ORDER, FLATTEN_AXES, flatten, unflatten


class TestTensorShape:
    """Tests for dims, size and reset."""

    def test_empty_by_default(self):
        """A default tensor has no elements."""
        t = Tensor3D()
        assert t.dims() == (0, 0, 0)
        assert t.size() == 0

    def test_initial_shape(self):
        """Constructor shape is reported by dims() and size()."""
        t = Tensor3D(4, 3, 2)
        assert t.dims() == (4, 3, 2)
        assert t.size() == 24
        assert t.data.shape == (4, 3, 2)
        assert t.data.dtype == np.float32

    def test_reset_larger(self):
        """Reset to a larger shape updates dims and size together."""
        t = Tensor3D(2, 2, 2)
        t.reset(5, 6, 7)
        assert t.dims() == (5, 6, 7)
        assert t.size() == 5 * 6 * 7

    def test_reset_smaller(self):
        """Reset to a smaller shape updates dims and size together."""
        t = Tensor3D(5, 6, 7)
        t.reset(1, 2, 3)
        assert t.dims() == (1, 2, 3)
        assert t.size() == 6

    def test_reset_discards_contents(self):
        """Reset reallocates zeroed storage."""
        t = Tensor3D(2, 2, 1).fill(3.0)
        t.reset(2, 2, 1)
        assert np.all(t.data == 0)

    def test_reset_invalidates_stale_indices(self):
        """Coordinates valid before a shrinking reset are out of bounds after it."""
        t = Tensor3D(8, 8, 1)
        assert t.is_in_bounds(7, 7)

        t.reset(4, 4, 1)
        assert not t.is_in_bounds(7, 7)
        assert not t.is_in_bounds(4, 0)
        assert t.is_in_bounds(3, 3)

    @pytest.mark.parametrize("dims", [(-1, 2, 2), (2, -3, 2), (2, 2, 1.5), (True, 2, 2)])
    def test_reset_rejects_invalid_dims(self, dims):
        """Negative or non-integer dimensions are rejected."""
        t = Tensor3D(1, 1, 1)
        with pytest.raises(ValueError):
            t.reset(*dims)
        assert t.dims() == (1, 1, 1), "Failed reset must not leave a partial shape"

    def test_zero_dimension_allowed(self):
        """Zero-sized dimensions are valid and give an empty tensor."""
        t = Tensor3D(3, 0, 2)
        assert t.size() == 0


class TestIsInBounds:
    """Tests for the spatial bounds predicate."""

    @pytest.mark.parametrize("x,y,expected", [
        (0, 0, True),
        (4, 2, True),
        (5, 0, False),     # x == sx
        (0, 3, False),     # y == sy
        (-1, 0, False),
        (0, -1, False),
        (5, 3, False),
        (100, 100, False),
    ])
    def test_scalar(self, x, y, expected):
        """True iff 0 <= x < sx and 0 <= y < sy."""
        t = Tensor3D(5, 3, 2)
        assert bool(t.is_in_bounds(x, y)) == expected

    def test_ignores_depth(self):
        """Only the first two dimensions are tested."""
        t = Tensor3D(2, 2, 0)
        assert t.is_in_bounds(1, 1)

    def test_array(self):
        """Arrays are tested elementwise."""
        t = Tensor3D(3, 3, 1)
        xs = np.array([-1, 0, 2, 3])
        ys = np.array([0, 0, 2, 1])
        np.testing.assert_array_equal(t.is_in_bounds(xs, ys), [False, True, True, False])


class TestElementAccess:
    """Tests for get/set and flat layout."""

    def test_get_set(self):
        """Write then read one element."""
        t = Tensor3D(3, 4, 5)
        t.set(1, 2, 3, 7.5)

        assert t.get(1, 2, 3) == 7.5
        assert t[1, 2, 3] == 7.5
        assert np.sum(t.data) == 7.5

    def test_flat_layout(self):
        """Flat index i = (x * sy + y) * sz + z."""
        sx, sy, sz = 3, 4, 5
        t = Tensor3D(sx, sy, sz)
        t.set(2, 1, 4, 1.0)

        i = (2 * sy + 1) * sz + 4
        assert t.get(i) == 1.0
        assert t[i] == 1.0
        assert np.argmax(t.flat) == i

    def test_flat_iteration_order(self):
        """Flat order is x outer, y middle, z inner."""
        assert FLATTEN_ORDER == ('x', 'y', 'z')

        t = Tensor3D(2, 3, 4)
        idx = 0
        for x in range(2):
            for y in range(3):
                for z in range(4):
                    t[x, y, z] = idx
                    idx += 1

        np.testing.assert_array_equal(t.flat, np.arange(24))

    def test_flat_set(self):
        """Flat writes land in the 3D buffer."""
        t = Tensor3D(1, 1, 4)
        t[2] = 5.0
        assert t.get(0, 0, 2) == 5.0

    def test_from_array_copies(self):
        """from_array keeps shape and does not alias the source."""
        src = np.arange(12, dtype=np.float64).reshape(2, 3, 2)
        t = Tensor3D.from_array(src)
        src[0, 0, 0] = 100

        assert t.dims() == (2, 3, 2)
        assert t.get(0, 0, 0) == 0
        assert t.dtype == np.float64

    def test_from_array_requires_3d(self):
        """Only 3D arrays describe a tensor."""
        with pytest.raises(ValueError):
            Tensor3D.from_array(np.zeros((2, 2)))

    def test_assign_shape_mismatch(self):
        """assign refuses arrays of a different shape."""
        t = Tensor3D(2, 2, 2)
        with pytest.raises(ValueError):
            t.assign(np.zeros((2, 2, 3)))

    def test_copy_is_independent(self):
        """copy() duplicates the buffer."""
        t = Tensor3D(2, 2, 1).fill(1.0)
        c = t.copy()
        c.fill(2.0)

        assert np.all(t.data == 1.0)
        assert c.dims() == t.dims()


if __name__ == '__main__':
    pytest.main([__file__, '-v'])


class TestFlatten:
    """Tests for flatten / unflatten, the layout FullyConnectedLayer reads."""

    def test_axes_follow_order(self):
        """x, y, z order is plain C order over the buffer."""
        assert FLATTEN_AXES == (0, 1, 2)

    def test_flatten_nested_loop_order(self):
        """flatten visits x outer, y middle, z inner."""
        a = np.random.randn(3, 2, 4)
        expected = [a[x, y, z] for x in range(3) for y in range(2) for z in range(4)]

        np.testing.assert_array_equal(flatten(a), expected)

    def test_flatten_matches_flat_view(self):
        """flatten agrees with Tensor3D.flat."""
        t = Tensor3D.from_array(np.random.randn(2, 5, 3))
        np.testing.assert_array_equal(flatten(t.data), t.flat)

    def test_unflatten_inverts_flatten(self):
        a = np.random.randn(4, 1, 3)
        back = unflatten(flatten(a), a.shape)

        assert back.shape == (4, 1, 3)
        np.testing.assert_array_equal(back, a)

    def test_unflatten_places_index(self):
        """Flat index (x * sy + y) * sz + z lands at (x, y, z)."""
        sx, sy, sz = 2, 3, 4
        back = unflatten(np.arange(24), (sx, sy, sz))
        assert back[1, 2, 3] == (1 * sy + 2) * sz + 3
