"""
GTG-Label: Connected-Component Labelling of Single Frames

Labels 4- or 8-connected regions of active cells in one 2D grid with a single
forward raster scan. Provisional labels that turn out to belong to the same
region (non-convex regions, e.g. U-shaped cloud shields) are merged through a
union-find table, and a resolution pass renumbers the surviving roots densely
as 1..N in raster order of first appearance.
"""

import numpy as np
from numba import njit

from .errors import InvalidGridShape


# Already-visited neighbours (row offset, col offset) for a row-major scan
_OFFSETS_4 = np.array([[-1, 0], [0, -1]], dtype=np.int64)
_OFFSETS_8 = np.array([[-1, 0], [0, -1], [-1, -1], [-1, 1]], dtype=np.int64)


def as_grid(grid, name='grid'):
    """
    Convert an array-like into a 2D float64 array, failing fast on bad shapes.
    
    Parameters
    ----------
    grid : array-like
        Nested lists, numpy array or xarray.DataArray
    name : str, optional
        Name used in error messages
        
    Returns
    -------
    numpy.ndarray
        2D float64 array
    """
    data = getattr(grid, 'values', grid)  # Unwrap DataArrays
    try:
        arr = np.asarray(data, dtype=np.float64)
    except (ValueError, TypeError) as err:
        raise InvalidGridShape(f'{name} is not a rectangular numeric grid: {err}') from err
    
    if arr.ndim != 2:
        raise InvalidGridShape(f'{name} must be 2D (rows, cols). Found {arr.ndim} dimension(s) with shape {arr.shape}')
    if arr.shape[0] <= 0 or arr.shape[1] <= 0:
        raise InvalidGridShape(f'{name} must have at least one row and one column. Found shape {arr.shape}')
    
    return arr


def label_grid(mask, connectivity=8, wrap_x=False):
    """
    Label connected regions of active cells in a 2D mask.
    
    Parameters
    ----------
    mask : array-like
        2D grid where finite, non-zero cells are active (e.g. 1.0 below the
        brightness temperature threshold, 0.0 elsewhere). NaN is inactive.
    connectivity : int, default=8
        4 (edge neighbours) or 8 (edge and diagonal neighbours)
    wrap_x : bool, default=False
        Treat the last column as adjacent to the first (periodic longitude)
        
    Returns
    -------
    labels : numpy.ndarray
        int32 array of the same shape; 0 is background, regions are 1..max_label
    max_label : int
        Number of regions found
    """
    if connectivity not in (4, 8):
        raise ValueError(f'connectivity must be 4 or 8. Found {connectivity}')
    
    grid = as_grid(mask, name='mask')
    active = np.isfinite(grid) & (grid != 0)
    
    if not active.any():
        return np.zeros(grid.shape, dtype=np.int32), 0
    
    offsets = _OFFSETS_8 if connectivity == 8 else _OFFSETS_4
    labels, max_label = _raster_label(active, offsets, wrap_x, connectivity == 8)
    
    return labels, int(max_label)


# ============================
# Numba Kernels
# ============================

@njit
def _find_root(parent, x):
    """Find the root of x, compressing the path behind it."""
    root = x
    while parent[root] != root:
        root = parent[root]
    
    while parent[x] != root:
        nxt = parent[x]
        parent[x] = root
        x = nxt
    
    return root


@njit
def _union(parent, a, b):
    """Merge the sets of a and b. The smaller root survives."""
    root_a = _find_root(parent, a)
    root_b = _find_root(parent, b)
    if root_a == root_b:
        return root_a
    if root_a < root_b:
        parent[root_b] = root_a
        return root_a
    parent[root_a] = root_b
    return root_b


@njit
def _raster_label(active, offsets, wrap_x, diagonal):
    """
    Single forward scan with union-find, then a dense resolution pass.
    
    Parameters
    ----------
    active : np.ndarray
        2D boolean array of active cells
    offsets : np.ndarray
        (n, 2) array of already-visited neighbour offsets
    wrap_x : bool
        Join first and last columns
    diagonal : bool
        Also join diagonal neighbours across the wrap seam
        
    Returns
    -------
    labels : np.ndarray
        Dense int32 labels
    n_labels : int
        Number of regions
    """
    ny, nx = active.shape
    labels = np.zeros((ny, nx), dtype=np.int32)
    
    # Provisional labels can never exceed the number of cells
    parent = np.zeros(ny * nx + 1, dtype=np.int32)
    next_label = 1
    
    for r in range(ny):
        for c in range(nx):
            if not active[r, c]:
                continue
            
            current = 0
            for k in range(offsets.shape[0]):
                rr = r + offsets[k, 0]
                cc = c + offsets[k, 1]
                if rr < 0 or cc < 0 or cc >= nx:
                    continue
                neighbour = labels[rr, cc]
                if neighbour == 0:
                    continue
                if current == 0:
                    current = neighbour
                elif neighbour != current:
                    current = _union(parent, current, neighbour)
            
            if current == 0:
                parent[next_label] = next_label
                current = next_label
                next_label += 1
            
            labels[r, c] = current
    
    # Seam between the last and first columns
    if wrap_x and nx > 1:
        for r in range(ny):
            if labels[r, 0] != 0 and labels[r, nx - 1] != 0:
                _union(parent, labels[r, 0], labels[r, nx - 1])
            if diagonal and r > 0:
                if labels[r, 0] != 0 and labels[r - 1, nx - 1] != 0:
                    _union(parent, labels[r, 0], labels[r - 1, nx - 1])
                if labels[r, nx - 1] != 0 and labels[r - 1, 0] != 0:
                    _union(parent, labels[r, nx - 1], labels[r - 1, 0])
    
    # Resolve equivalences & renumber densely in order of first appearance
    remap = np.zeros(next_label, dtype=np.int32)
    n_labels = 0
    for r in range(ny):
        for c in range(nx):
            provisional = labels[r, c]
            if provisional == 0:
                continue
            root = _find_root(parent, provisional)
            if remap[root] == 0:
                n_labels += 1
                remap[root] = n_labels
            labels[r, c] = remap[root]
    
    return labels, n_labels
