"""
GTG-Track: Grab'em Tag'em Graph'em (GTG) Tracking of Mesoscale Convective Complexes

GTG labels cold cloud shields in each brightness temperature frame, links
components of consecutive frames when they spatially overlap, and assembles
the links into a temporal graph.

This module provides:
- Per-frame labelling & component extraction (`label_frame`)
- Overlap matching of two consecutive labelled frames (`match_overlaps`)
- The pure per-frame-pair edge computation (`frame_pair_edges`)
- A sequential reference pipeline over a list of frames (`track_frames`)
- A dask-parallel tracker over (time, lat, lon) DataArrays (`tracker`)

Key terminology:
- Component: A connected region of active cells in a single frame
- Overlap: Non-zero spatial intersection of components in frames t and t+1
- Edge: Overlap whose both components pass the criteria filter
"""

import logging
import warnings
from typing import Dict, NamedTuple

import dask
import numpy as np
import xarray as xr
from dask.base import is_dask_collection

from .components import (DEFAULT_AREA_THRESHOLD, DEFAULT_DIFF_THRESHOLD,
                         Component, accepts, extract_components)
from .detect import COMPARATORS, DEFAULT_THRESHOLD, reduce_resolution, threshold_mask
from .errors import InvalidGridShape, ShapeMismatch
from .graph import build_graph
from .label import as_grid, label_grid


DEFAULT_CONNECTIVITY = 8


# ============================
# Per-Frame & Per-Pair Functions
# ============================

class LabeledFrame(NamedTuple):
    """A labelled frame and its components (keyed by label)."""
    frame: int
    labels: np.ndarray
    max_label: int
    components: Dict[int, Component]


def label_frame(grid, frame, threshold=DEFAULT_THRESHOLD, comparator='le',
                connectivity=DEFAULT_CONNECTIVITY, wrap_x=False):
    """
    Threshold, label, and extract the components of one frame.
    
    Parameters
    ----------
    grid : array-like
        2D raw field (e.g. brightness temperature)
    frame : int
        Temporal index of the frame
    threshold : float, optional
        Masking threshold
    comparator : str, optional
        Threshold comparator ('le', 'lt', 'ge', 'gt')
    connectivity : int, optional
        4 or 8
    wrap_x : bool, optional
        Periodic x-dimension
    
    Returns
    -------
    LabeledFrame
    """
    values = as_grid(grid)
    mask = threshold_mask(values, threshold=threshold, comparator=comparator)
    labels, max_label = label_grid(mask, connectivity=connectivity, wrap_x=wrap_x)
    components = extract_components(values, labels, max_label, frame)
    
    return LabeledFrame(int(frame), labels, max_label, {c.label: c for c in components})


def match_overlaps(labels_t, labels_next, return_area=False):
    """
    Find all ordered label pairs that share at least one cell.
    
    Parameters
    ----------
    labels_t : array-like
        Labels at time t
    labels_next : array-like
        Labels at time t+1 (same shape)
    return_area : bool, optional
        Also count the overlapping cells of each pair
    
    Returns
    -------
    set or dict
        Set of (label_t, label_next) pairs, or dict of pair -> overlap cells
        if `return_area` is True
    """
    ids_t0 = as_grid(labels_t, name='labels_t').astype(np.int64)
    ids_next = as_grid(labels_next, name='labels_next').astype(np.int64)
    
    if ids_t0.shape != ids_next.shape:
        raise ShapeMismatch(f'Labelled grids differ in shape: {ids_t0.shape} vs {ids_next.shape}')
    
    # Only process cells where both times have valid IDs
    combined_mask = (ids_t0 > 0) & (ids_next > 0)
    
    if not np.any(combined_mask):
        return {} if return_area else set()
    
    ids_t0_valid = ids_t0[combined_mask]
    ids_next_valid = ids_next[combined_mask]
    
    # Unique identifier for each pair (collision free for base > max label)
    base = max(ids_t0_valid.max(), ids_next_valid.max()) + 1
    pair_ids = ids_t0_valid * base + ids_next_valid
    
    unique_pairs, areas = np.unique(pair_ids, return_counts=True)
    id_t0 = (unique_pairs // base).tolist()
    id_next = (unique_pairs % base).tolist()
    
    if return_area:
        return {pair: int(area) for pair, area in zip(zip(id_t0, id_next), areas)}
    return set(zip(id_t0, id_next))


def filter_overlaps(pairs, components_t, components_next, frame_t, frame_next,
                    area_threshold=DEFAULT_AREA_THRESHOLD, diff_threshold=DEFAULT_DIFF_THRESHOLD):
    """
    Keep overlap pairs whose two components both pass the criteria filter.
    
    Parameters
    ----------
    pairs : iterable
        (label_t, label_next) pairs
    components_t, components_next : dict
        Mapping of label -> Component for each frame
    frame_t, frame_next : int
        Frame indices
    area_threshold, diff_threshold : float, optional
        Criteria thresholds
    
    Returns
    -------
    set
        Edges as ((frame_t, label_t), (frame_next, label_next))
    """
    edges = set()
    for label_t, label_next in pairs:
        if not accepts(components_t[label_t], area_threshold, diff_threshold):
            continue
        if not accepts(components_next[label_next], area_threshold, diff_threshold):
            continue
        edges.add(((int(frame_t), int(label_t)), (int(frame_next), int(label_next))))
    
    return edges


def frame_pair_edges(frame_t, frame_next, area_threshold=DEFAULT_AREA_THRESHOLD,
                     diff_threshold=DEFAULT_DIFF_THRESHOLD):
    """
    Edges between two consecutive labelled frames.
    
    Pure & idempotent: the same frames always produce the same edges.
    
    Parameters
    ----------
    frame_t, frame_next : LabeledFrame
        Labelled frames at t and t+1
    area_threshold, diff_threshold : float, optional
        Criteria thresholds
    
    Returns
    -------
    set
        Edges as ((frame_t, label_t), (frame_next, label_next))
    """
    pairs = match_overlaps(frame_t.labels, frame_next.labels)
    return filter_overlaps(pairs, frame_t.components, frame_next.components,
                           frame_t.frame, frame_next.frame,
                           area_threshold=area_threshold, diff_threshold=diff_threshold)


def track_frames(grids, frame_ids=None, threshold=DEFAULT_THRESHOLD, comparator='le',
                 area_threshold=DEFAULT_AREA_THRESHOLD, diff_threshold=DEFAULT_DIFF_THRESHOLD,
                 connectivity=DEFAULT_CONNECTIVITY, wrap_x=False):
    """
    Sequential GTG search over a time-ordered list of frames.
    
    Parameters
    ----------
    grids : sequence of array-like
        Time-ordered 2D frames
    frame_ids : sequence of int, optional
        Frame index of each grid. Defaults to 0..N-1.
    threshold, comparator : optional
        Masking configuration
    area_threshold, diff_threshold : float, optional
        Criteria thresholds
    connectivity : int, optional
        4 or 8
    wrap_x : bool, optional
        Periodic x-dimension
    
    Returns
    -------
    MCCGraph
    """
    grids = list(grids)
    frame_ids = list(range(len(grids))) if frame_ids is None else [int(f) for f in frame_ids]
    if len(frame_ids) != len(grids):
        raise ValueError(f'Got {len(frame_ids)} frame IDs for {len(grids)} grids')
    if any(b <= a for a, b in zip(frame_ids, frame_ids[1:])):
        raise ValueError('frame_ids must be strictly increasing (frames must be in time order)')
    
    frames = [
        label_frame(grid, frame, threshold=threshold, comparator=comparator,
                    connectivity=connectivity, wrap_x=wrap_x)
        for grid, frame in zip(grids, frame_ids)
    ]
    
    # Sliding window over consecutive frames
    edge_candidates = []
    for frame_t, frame_next in zip(frames, frames[1:]):
        edge_candidates.extend(frame_pair_edges(frame_t, frame_next,
                                                area_threshold=area_threshold,
                                                diff_threshold=diff_threshold))
    
    return build_graph(edge_candidates)


# ============================
# Main Tracker Class
# ============================

class tracker:
    """
    Tracker runs the GTG search over a time series of gridded frames in parallel.
    
    Each frame is labelled independently, and each consecutive frame pair is
    matched independently, as dask tasks. The only synchronisation point is
    the final graph assembly, which consumes the edge candidates of all pairs.
    
    Main workflow:
    1. Preprocessing: Optional resolution reduction, threshold masking
    2. Component identification: Label connected components at each time
    3. Matching: Find overlapping components of consecutive times
    4. Graph assembly: Filter by criteria, deduplicate, assign vertex IDs
    
    Parameters
    ----------
    data : xarray.DataArray
        Dask-backed raw field (e.g. brightness temperature) with dimensions
        (timedim, ydim, xdim)
    threshold : float, default=241.0
        Masking threshold
    area_threshold : float, default=60.0
        Components with at least this many cells pass the criteria filter
    diff_threshold : float, default=10.0
        Smaller components pass if their max - min exceeds this value
    comparator : str, default='le'
        Active cells satisfy `data <comparator> threshold`
    connectivity : int, default=8
        4 or 8 neighbour connectivity
    wrap_x : bool, default=False
        Whether the x-dimension is periodic
    coarsen : int, optional
        Block-average the data by this factor before masking
    timedim : str, default='time'
        Name of time dimension
    xdim : str, default='lon'
        Name of x/longitude dimension
    ydim : str, default='lat'
        Name of y/latitude dimension
    debug : int, default=0
        Debug level (0-2)
    verbosity : int, default=0
        Verbosity level
    """
    
    def __init__(self, data, threshold=DEFAULT_THRESHOLD, area_threshold=DEFAULT_AREA_THRESHOLD,
                 diff_threshold=DEFAULT_DIFF_THRESHOLD, comparator='le',
                 connectivity=DEFAULT_CONNECTIVITY, wrap_x=False, coarsen=None,
                 timedim='time', xdim='lon', ydim='lat', debug=0, verbosity=0):
        
        self.data = data
        self.threshold = threshold
        self.area_threshold = area_threshold
        self.diff_threshold = diff_threshold
        self.comparator = comparator
        self.connectivity = connectivity
        self.wrap_x = wrap_x
        self.coarsen = coarsen
        self.timedim = timedim
        self.xdim = xdim
        self.ydim = ydim
        self.debug = debug
        self.verbosity = verbosity
        
        self._validate_inputs()
        self._configure_warnings()
    
    def _validate_inputs(self):
        """Validate input parameters and data."""
        if ((self.timedim, self.ydim, self.xdim) != self.data.dims):
            try:
                self.data = self.data.transpose(self.timedim, self.ydim, self.xdim)
            except ValueError:
                raise ValueError(
                    f'GTG only supports 3D DataArrays with dimensions '
                    f'({self.timedim}, {self.ydim}, and {self.xdim}). Found {list(self.data.dims)}'
                )
        
        if not is_dask_collection(self.data.data):
            raise ValueError('The input DataArray must be backed by a Dask array')
        
        if self.data.sizes[self.ydim] == 0 or self.data.sizes[self.xdim] == 0:
            raise InvalidGridShape(
                f'Frames must have at least one row and one column. '
                f'Found ({self.data.sizes[self.ydim]}, {self.data.sizes[self.xdim]})'
            )
        
        if self.connectivity not in (4, 8):
            raise ValueError(f'connectivity must be 4 or 8. Found {self.connectivity}')
        
        if self.comparator not in COMPARATORS:
            raise ValueError(f'comparator must be one of {sorted(COMPARATORS)}. Found {self.comparator!r}')
        
        if self.coarsen is not None and (int(self.coarsen) != self.coarsen or self.coarsen < 1):
            raise ValueError(f'coarsen must be a positive integer. Found {self.coarsen}')
        
        # Frame indices are positions along time, so time must be strictly increasing
        if self.timedim in self.data.coords:
            time_index = self.data.indexes[self.timedim]
            if not time_index.is_unique:
                raise ValueError('Duplicate time steps found: frame indices must be unique')
            if not time_index.is_monotonic_increasing:
                if self.verbosity > 0:
                    print('Sorting frames by time')
                self.data = self.data.sortby(self.timedim)
        
        if self.data.sizes[self.timedim] < 2:
            warnings.warn('Fewer than 2 frames: the graph will be empty')
    
    def _configure_warnings(self):
        """Configure warning and logging suppression based on debug level."""
        if self.debug < 2:
            logging.getLogger('distributed.scheduler').setLevel(logging.ERROR)
            
            def filter_dask_warnings(record):
                msg = str(record.msg)
                
                if self.debug == 0:
                    if any(pattern in msg for pattern in [
                        'Detected different `run_spec`',
                        'Sending large graph',
                        'This may cause some slowdown'
                    ]):
                        return False
                    return True
                else:
                    if 'Detected different `run_spec`' in msg:
                        return False
                    return True
            
            logging.getLogger('distributed.scheduler').addFilter(filter_dask_warnings)
            
            if self.debug == 0:
                warnings.filterwarnings('ignore',
                                        category=UserWarning,
                                        module='distributed.client')
                warnings.filterwarnings('ignore',
                                        message='.*Sending large graph.*\n.*This may cause some slowdown.*',
                                        category=UserWarning)
    
    # ============================
    # Main Public Methods
    # ============================
    
    def run(self, return_fields=False):
        """
        Run the complete GTG search.
        
        Parameters
        ----------
        return_fields : bool, default=False
            If True, also return a Dataset with the label and event fields
        
        Returns
        -------
        graph : MCCGraph
            Vertices & edges of the overlap graph
        fields_ds : xarray.Dataset, optional
            'label_field' (per-frame component labels) and 'event_field'
            (event ID of each labelled cell whose component is a vertex, else 0)
        """
        data = self.preprocess()
        if self.verbosity > 0:
            print('Finished preprocessing')
        
        label_field = self.identify_components(data)
        components = self.calculate_component_properties(data, label_field)
        
        if data.sizes[self.timedim] < 2:
            # No frame pairs: nothing to match
            label_field, components = dask.compute(label_field, components)
            graph = build_graph([])
        else:
            overlaps = self.find_overlapping_components(label_field)
            
            # Barrier: all frames & frame pairs are computed before graph assembly
            label_field, components, overlaps = dask.compute(label_field, components, overlaps)
            if self.verbosity > 0:
                print('Finished labelling & matching all frames')
            
            graph = self.assemble_graph(components.values, overlaps.values)
        
        if self.verbosity > 0:
            print(f'NUM VERTEX : {graph.n_vertices}')
            print(f'NUM EDGES : {graph.n_edges}')
        
        if not return_fields:
            return graph
        
        event_field = self.map_events(label_field, graph)
        fields_ds = xr.Dataset(
            {'label_field': label_field, 'event_field': event_field},
            attrs={
                'threshold': self.threshold,
                'comparator': self.comparator,
                'area_threshold': self.area_threshold,
                'diff_threshold': self.diff_threshold,
                'connectivity': self.connectivity,
                'N_vertices': graph.n_vertices,
                'N_edges': graph.n_edges,
            }
        )
        return graph, fields_ds
    
    def preprocess(self):
        """
        Reduce resolution (optional) and ensure frames are single spatial chunks.
        
        Returns
        -------
        xarray.DataArray
            Data ready for per-frame processing
        """
        data = self.data
        if self.coarsen is not None and self.coarsen > 1:
            data = reduce_resolution(data, int(self.coarsen), xdim=self.xdim, ydim=self.ydim)
            if data.sizes[self.ydim] == 0 or data.sizes[self.xdim] == 0:
                raise InvalidGridShape(f'coarsen={self.coarsen} leaves no complete block in the frames')
        
        return data.chunk({self.ydim: -1, self.xdim: -1})
    
    # ============================
    # Component Identification Methods
    # ============================
    
    def identify_components(self, data):
        """
        Label connected components of the thresholded data at each time.
        
        Parameters
        ----------
        data : xarray.DataArray
            Preprocessed data
        
        Returns
        -------
        label_field : xarray.DataArray
            int32 labels (1..N per frame, 0 = no component)
        """
        mask = threshold_mask(data, threshold=self.threshold, comparator=self.comparator)
        
        def label_slice(mask_slice, connectivity, wrap_x):
            labels, _ = label_grid(mask_slice, connectivity=connectivity, wrap_x=wrap_x)
            return labels
        
        label_field = xr.apply_ufunc(
            label_slice,
            mask,
            input_core_dims=[[self.ydim, self.xdim]],
            output_core_dims=[[self.ydim, self.xdim]],
            kwargs={'connectivity': self.connectivity, 'wrap_x': self.wrap_x},
            vectorize=True,
            dask='parallelized',
            output_dtypes=[np.int32]
        )
        
        return label_field.rename('label_field')
    
    def frame_index(self, da):
        """Dense frame indices (0..N-1) along the time dimension of `da`."""
        n_frames = da.sizes[self.timedim]
        return xr.DataArray(
            np.arange(n_frames, dtype=np.int64),
            dims=[self.timedim],
            coords={self.timedim: da[self.timedim]} if self.timedim in da.coords else None
        ).chunk({self.timedim: da.chunks[0]})
    
    def calculate_component_properties(self, data, label_field):
        """
        Extract the components of each frame.
        
        Parameters
        ----------
        data : xarray.DataArray
            Preprocessed (original) values
        label_field : xarray.DataArray
            Labels of each frame
        
        Returns
        -------
        xarray.DataArray
            Object array along time; each element is a dict of label -> Component
        """
        def component_slice(values, labels, frame):
            max_label = int(labels.max())
            return {c.label: c for c in extract_components(values, labels, max_label, int(frame))}
        
        return xr.apply_ufunc(
            component_slice,
            data,
            label_field,
            self.frame_index(label_field),
            input_core_dims=[[self.ydim, self.xdim], [self.ydim, self.xdim], []],
            output_core_dims=[[]],
            vectorize=True,
            dask='parallelized',
            output_dtypes=[object]
        )
    
    # ============================
    # Overlap and Graph Methods
    # ============================
    
    def find_overlapping_components(self, label_field):
        """
        Find overlapping component pairs of each frame and the next.
        
        Parameters
        ----------
        label_field : xarray.DataArray
            Labels of each frame
        
        Returns
        -------
        xarray.DataArray
            Object array along time; element t is the frozenset of
            (label_t, label_t+1) pairs. The last frame has no successor.
        """
        label_field_next = label_field.shift({self.timedim: -1}, fill_value=0)
        
        def overlap_slice(ids_t0, ids_next):
            return frozenset(match_overlaps(ids_t0, ids_next))
        
        return xr.apply_ufunc(
            overlap_slice,
            label_field,
            label_field_next,
            input_core_dims=[[self.ydim, self.xdim], [self.ydim, self.xdim]],
            output_core_dims=[[]],
            vectorize=True,
            dask='parallelized',
            output_dtypes=[object]
        )
    
    def assemble_graph(self, components, overlaps):
        """
        Filter the overlaps of every frame pair by criteria & build the graph.
        
        Parameters
        ----------
        components : sequence of dict
            Per-frame label -> Component
        overlaps : sequence of frozenset
            Per-frame overlap pairs with the next frame
        
        Returns
        -------
        MCCGraph
        """
        edge_candidates = []
        for t in range(len(components) - 1):
            edge_candidates.extend(filter_overlaps(
                overlaps[t], components[t], components[t + 1], t, t + 1,
                area_threshold=self.area_threshold, diff_threshold=self.diff_threshold
            ))
        
        return build_graph(edge_candidates)
    
    def map_events(self, label_field, graph):
        """
        Replace component labels by the event ID of their vertex.
        
        Parameters
        ----------
        label_field : xarray.DataArray
            Computed labels of each frame
        graph : MCCGraph
            Result graph
        
        Returns
        -------
        xarray.DataArray
            Event ID field (0 = no tracked event)
        """
        n_frames = label_field.sizes[self.timedim]
        max_label = int(label_field.max().item()) if label_field.size else 0
        
        # Lookup table of (frame, label) -> event ID
        lookup = np.zeros((n_frames, max_label + 1), dtype=np.int32)
        for (frame, label), event in graph.events().items():
            lookup[frame, label] = event
        
        lookup_da = xr.DataArray(lookup, dims=[self.timedim, 'label'])
        if self.timedim in label_field.coords:
            lookup_da = lookup_da.assign_coords({self.timedim: label_field[self.timedim]})
        
        def map_labels_to_events(block, lookup_row):
            return lookup_row[block]
        
        event_field = xr.apply_ufunc(
            map_labels_to_events,
            label_field,
            lookup_da,
            input_core_dims=[[self.ydim, self.xdim], ['label']],
            output_core_dims=[[self.ydim, self.xdim]],
            vectorize=True,
            output_dtypes=[np.int32]
        )
        
        return event_field.rename('event_field').astype(np.int32)
