"""
GTG-Components: Component Records and Criteria Filtering

Turns a labelled frame into immutable component records (area, min & max of the
original field, bounding box, centroid), and decides which components qualify
as candidate convective features.
"""

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from skimage.measure import regionprops_table

from .errors import ShapeMismatch
from .label import as_grid


# Criteria defaults of the distributed MCC search
DEFAULT_AREA_THRESHOLD = 60.0   # [cells]
DEFAULT_DIFF_THRESHOLD = 10.0   # [K]

_PROPERTIES = ('label', 'area', 'intensity_min', 'intensity_max', 'bbox', 'centroid')


@dataclass(frozen=True)
class Component:
    """A connected region of one frame, identified by (frame, label)."""
    frame: int
    label: int
    area: int
    min_value: float
    max_value: float
    bbox: Tuple[int, int, int, int]  # (min_row, min_col, max_row, max_col), max exclusive
    centroid: Tuple[float, float]
    
    @property
    def key(self) -> Tuple[int, int]:
        return (self.frame, self.label)
    
    @property
    def diff(self) -> float:
        return self.max_value - self.min_value


def extract_components(original, labeled, max_label, frame_id) -> List[Component]:
    """
    Aggregate per-label statistics of a labelled frame in a single pass.
    
    Parameters
    ----------
    original : array-like
        2D field the mask was derived from (e.g. brightness temperature)
    labeled : array-like
        2D labels of the same shape; 0 is background
    max_label : int
        Number of regions in `labeled` (labels are 1..max_label)
    frame_id : int
        Temporal index of the frame
        
    Returns
    -------
    list of Component
        One record per label, ordered by label
    """
    values = as_grid(original, name='original')
    labels = as_grid(labeled, name='labeled').astype(np.int32)
    
    if values.shape != labels.shape:
        raise ShapeMismatch(f'original grid {values.shape} and labelled grid {labels.shape} differ in shape')
    
    if max_label == 0 or not labels.any():
        if max_label != 0 or labels.any():
            raise ValueError(f'max_label={max_label} is inconsistent with the labelled grid')
        return []
    
    props = regionprops_table(labels, intensity_image=values, properties=_PROPERTIES)
    
    if len(props['label']) != max_label:
        raise ValueError(f'Found {len(props["label"])} labelled regions but max_label={max_label}')
    
    components = []
    for i, label in enumerate(props['label']):
        components.append(Component(
            frame=int(frame_id),
            label=int(label),
            area=int(props['area'][i]),
            min_value=float(props['intensity_min'][i]),
            max_value=float(props['intensity_max'][i]),
            bbox=tuple(int(props[f'bbox-{k}'][i]) for k in range(4)),
            centroid=(float(props['centroid-0'][i]), float(props['centroid-1'][i])),
        ))
    
    return components


def accepts(component, area_threshold=DEFAULT_AREA_THRESHOLD, diff_threshold=DEFAULT_DIFF_THRESHOLD) -> bool:
    """
    Criteria check for a candidate feature.
    
    A component qualifies if it is large enough, or if it is small but has a
    strong internal temperature contrast. Only small & flat components are
    rejected.
    """
    return bool(component.area >= area_threshold or component.diff > diff_threshold)
