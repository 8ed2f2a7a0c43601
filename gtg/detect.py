"""
GTG-Detect: Frame Pre-processing for MCC Detection

Prepares brightness temperature frames for labelling and tracking:
- Threshold masking of cold cloud shields (e.g. Tb <= 241 K)
- Block-mean resolution reduction
- Frame indexing from the dates embedded in source file names
- Random frame generation for testing & benchmarking

Compatible data formats:
- numpy arrays:      2D (lat, lon) frames
- xarray DataArrays: 2D frames or 3D (time, lat, lon) stacks
"""

import operator
from pathlib import PurePath

import numpy as np
import pandas as pd
import xarray as xr


DEFAULT_THRESHOLD = 241.0  # [K] Cold cloud shield of MCCs

COMPARATORS = {
    'le': operator.le,
    'lt': operator.lt,
    'ge': operator.ge,
    'gt': operator.gt,
}


# ============================
# Masking & Resolution
# ============================

def threshold_mask(grid, threshold=DEFAULT_THRESHOLD, comparator='le'):
    """
    Mark active cells by comparing the field against a threshold.
    
    Parameters
    ----------
    grid : numpy.ndarray or xarray.DataArray
        Raw field (e.g. brightness temperature in Kelvin)
    threshold : float, optional
        Threshold value
    comparator : str, optional
        One of 'le', 'lt', 'ge', 'gt'. Cells where `grid <comparator> threshold`
        holds are active.
        
    Returns
    -------
    numpy.ndarray or xarray.DataArray
        Float mask of the same shape: 1.0 active, 0.0 inactive (NaN is inactive)
    """
    if comparator not in COMPARATORS:
        raise ValueError(f'comparator must be one of {sorted(COMPARATORS)}. Found {comparator!r}')
    
    if not isinstance(grid, xr.DataArray):
        grid = np.asarray(grid, dtype=np.float64)
    
    return COMPARATORS[comparator](grid, threshold).astype(np.float64)


def reduce_resolution(da, factor, xdim='lon', ydim='lat'):
    """
    Reduce the spatial resolution of a DataArray by block averaging.
    
    Parameters
    ----------
    da : xarray.DataArray
        Input data with `xdim` and `ydim` dimensions
    factor : int
        Number of cells along each axis averaged into one
    xdim, ydim : str, optional
        Names of the spatial dimensions
        
    Returns
    -------
    xarray.DataArray
        Coarsened data (incomplete trailing blocks are trimmed)
    """
    factor = int(factor)
    if factor < 1:
        raise ValueError(f'Resolution reduction factor must be a positive integer. Found {factor}')
    if factor == 1:
        return da
    
    return da.coarsen({ydim: factor, xdim: factor}, boundary='trim').mean()


# ============================
# Frame Indexing
# ============================

def frame_index_from_sources(sources, token=1, sep='_'):
    """
    Assign dense frame indices to source files from the dates in their names.
    
    e.g. '/data/merg_2006091100_4km-pixel.nc' has the date token '2006091100'
    at position 1 when split on '_'.
    
    Parameters
    ----------
    sources : iterable of str or Path
        Source file paths or URLs
    token : int, optional
        Position of the date token in the file name
    sep : str, optional
        Separator used to split the file name
        
    Returns
    -------
    dict
        Mapping of source -> frame index (0..N-1 in date order)
    """
    sources = list(sources)
    dates = []
    for source in sources:
        name = PurePath(str(source)).name
        parts = name.split(sep)
        if len(parts) <= token:
            raise ValueError(f'Cannot find date token {token} in {name!r} (split on {sep!r})')
        dates.append(_parse_date(parts[token]))
    
    dates = pd.DatetimeIndex(dates)
    if dates.has_duplicates:
        duplicated = sorted(set(dates[dates.duplicated()].strftime('%Y-%m-%d %H:%M')))
        raise ValueError(f'Duplicate source dates would break frame ordering: {duplicated}')
    
    order = np.argsort(dates.values, kind='stable')
    return {sources[i]: int(rank) for rank, i in enumerate(order)}


def _parse_date(text):
    """Parse compact (YYYYMMDD[HH[MM]]) or delimited date strings."""
    stem, dot, suffix = text.rpartition('.')
    if dot and not suffix.isdigit():
        text = stem
    text = text.replace('.', '-')
    if text.isdigit():
        fmt = {8: '%Y%m%d', 10: '%Y%m%d%H', 12: '%Y%m%d%H%M'}.get(len(text))
        if fmt is None:
            raise ValueError(f'Unrecognised compact date {text!r}')
        return pd.to_datetime(text, format=fmt)
    return pd.to_datetime(text)


# ============================
# Synthetic Data
# ============================

def generate_random_frames(n_frames, shape=(20, 20), start='2000-01-01', freq='D',
                           low=180.0, high=320.0, seed=None, chunks=1):
    """
    Generate a stack of random brightness temperature frames.
    
    Parameters
    ----------
    n_frames : int
        Number of time steps
    shape : tuple, optional
        (nlat, nlon) of each frame
    start : str, optional
        First timestamp
    freq : str, optional
        pandas frequency string between frames
    low, high : float, optional
        Range of the uniform values [K]
    seed : int, optional
        Random seed
    chunks : int, optional
        Dask chunk size along time
        
    Returns
    -------
    xarray.DataArray
        Dask-backed (time, lat, lon) DataArray named 'Tb'
    """
    rng = np.random.default_rng(seed)
    ny, nx = shape
    values = rng.uniform(low, high, size=(n_frames, ny, nx))
    
    da = xr.DataArray(
        values,
        dims=['time', 'lat', 'lon'],
        coords={
            'time': pd.date_range(start, periods=n_frames, freq=freq),
            'lat': np.linspace(-10., 10., ny),
            'lon': np.linspace(-80., 80., nx),
        },
        name='Tb',
        attrs={'units': 'K'},
    )
    return da.chunk({'time': chunks})
