"""
GTG: Grab'em Tag'em Graph'em Detection of Mesoscale Convective Complexes
=========================================================================

A Python package for finding cold cloud shields in time-ordered satellite
brightness temperature frames and linking them through time into a graph of
tracked features.

Core Functionality
-----------------
- label_grid: Label connected regions of one thresholded frame
- extract_components / accepts: Component statistics and criteria filtering
- match_overlaps / frame_pair_edges: Link components of consecutive frames
- build_graph: Assemble the vertex and edge sets
- tracker: Run the whole search in parallel over a (time, lat, lon) DataArray

Example
-------
>>> import xarray as xr
>>> import gtg
>>> # Load brightness temperature frames
>>> tb = xr.open_dataset('merg_data.nc', chunks={'time': 1}).ch4
>>> # Search for MCC candidates & their overlap graph
>>> graph = gtg.tracker(tb, threshold=241.0, area_threshold=60, diff_threshold=10).run()
>>> graph.write('VertexList.txt', 'EdgeList.txt')
"""

from .errors import InvalidGridShape, ShapeMismatch

from .label import as_grid, label_grid

from .components import Component, extract_components, accepts

from .detect import (
    threshold_mask,
    reduce_resolution,
    frame_index_from_sources,
    generate_random_frames
)

from .track import (
    LabeledFrame,
    label_frame,
    match_overlaps,
    filter_overlaps,
    frame_pair_edges,
    track_frames,
    tracker
)

from .graph import MCCGraph, build_graph

from .helper import configure_dask, start_local_cluster

# Convenience variables
__all__ = [
    # Errors
    'InvalidGridShape',
    'ShapeMismatch',
    
    # Labelling & components
    'as_grid',
    'label_grid',
    'Component',
    'extract_components',
    'accepts',
    
    # Preprocessing
    'threshold_mask',
    'reduce_resolution',
    'frame_index_from_sources',
    'generate_random_frames',
    
    # Tracking
    'LabeledFrame',
    'label_frame',
    'match_overlaps',
    'filter_overlaps',
    'frame_pair_edges',
    'track_frames',
    'tracker',
    
    # Graph
    'MCCGraph',
    'build_graph',
    
    # Parallel execution
    'configure_dask',
    'start_local_cluster',
]

# Version information
from importlib.metadata import version, PackageNotFoundError
try:
    __version__ = version("gtg")
except PackageNotFoundError:
    # Package is not installed
    try:
        from setuptools_scm import get_version
        __version__ = get_version(root="..", relative_to=__file__)
    except (ImportError, LookupError):
        __version__ = "unknown"
