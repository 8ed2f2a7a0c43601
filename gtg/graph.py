"""
GTG-Graph: Temporal Overlap Graph Assembly

Collects the (frame, component) edge candidates of all frame pairs, assigns
dense vertex IDs, removes duplicate edges, and clusters vertices into tracked
features (events).

Key terminology:
- Vertex: One (frame, label) component that takes part in at least one edge
- Edge: Directed link from a component in frame t to an overlapping component in frame t+1
- Event: A connected set of vertices, i.e. one feature tracked through time
"""

from pathlib import Path

import numpy as np
import xarray as xr
from scipy.sparse import csr_matrix
from scipy.sparse.csgraph import connected_components


class MCCGraph:
    """
    Terminal vertex/edge sets of a GTG search.
    
    Parameters
    ----------
    vertices : dict
        Mapping of (frame, label) -> vertex ID
    edges : frozenset
        Set of (vertex_t, vertex_t+1) ID pairs
    """
    
    def __init__(self, vertices, edges):
        self.vertices = dict(vertices)
        self.edges = frozenset(edges)
        self._keys_by_id = {vid: key for key, vid in self.vertices.items()}
    
    def __repr__(self):
        return f'MCCGraph(n_vertices={self.n_vertices}, n_edges={self.n_edges})'
    
    def __eq__(self, other):
        if not isinstance(other, MCCGraph):
            return NotImplemented
        return self.vertices == other.vertices and self.edges == other.edges
    
    @property
    def n_vertices(self):
        return len(self.vertices)
    
    @property
    def n_edges(self):
        return len(self.edges)
    
    def key(self, vertex_id):
        """(frame, label) of a vertex ID."""
        return self._keys_by_id[vertex_id]
    
    def vertex_keys(self):
        """Vertex (frame, label) keys sorted by frame, then label."""
        return sorted(self.vertices)
    
    def sorted_edges(self):
        """Edges as sorted (vertex_t, vertex_t+1) ID pairs."""
        return sorted(self.edges)
    
    def edge_keys(self):
        """Edges as sorted ((frame, label), (frame, label)) pairs."""
        return sorted((self._keys_by_id[a], self._keys_by_id[b]) for a, b in self.edges)
    
    def events(self):
        """
        Cluster the vertices into events (features tracked through time).
        
        Returns
        -------
        dict
            Mapping of (frame, label) -> event ID. Event IDs start at 1 and are
            ordered by the earliest vertex of each event.
        """
        n = self.n_vertices
        if n == 0:
            return {}
        
        # Sparse adjacency of the (undirected) overlap graph
        edge_array = np.array(self.sorted_edges(), dtype=np.int64).reshape(-1, 2)
        row_indices, col_indices = edge_array.T
        data = np.ones(len(edge_array), dtype=np.bool_)
        graph = csr_matrix((data, (row_indices, col_indices)), shape=(n, n), dtype=np.bool_)
        
        _, component_IDs = connected_components(csgraph=graph, directed=False, return_labels=True)
        
        # Renumber components in order of their first (sorted) vertex
        event_IDs = {}
        result = {}
        for key in self.vertex_keys():
            component_ID = component_IDs[self.vertices[key]]
            if component_ID not in event_IDs:
                event_IDs[component_ID] = len(event_IDs) + 1
            result[key] = event_IDs[component_ID]
        
        return result
    
    def to_dataset(self):
        """
        Convert the graph to an xarray Dataset.
        
        Returns
        -------
        xarray.Dataset
            Variables 'frame', 'label', 'event' along 'vertex' (indexed by
            vertex ID), and 'source', 'target' along 'edge'.
        """
        vertex_IDs = np.arange(self.n_vertices, dtype=np.int32)
        keys = [self._keys_by_id[vid] for vid in vertex_IDs]
        events = self.events()
        edges = np.array(self.sorted_edges(), dtype=np.int32).reshape(-1, 2)
        
        return xr.Dataset(
            {
                'frame': ('vertex', np.array([k[0] for k in keys], dtype=np.int32)),
                'label': ('vertex', np.array([k[1] for k in keys], dtype=np.int32)),
                'event': ('vertex', np.array([events[k] for k in keys], dtype=np.int32)),
                'source': ('edge', edges[:, 0]),
                'target': ('edge', edges[:, 1]),
            },
            coords={'vertex': vertex_IDs},
            attrs={
                'description': 'Grab em Tag em Graph em (GTG) overlap graph',
                'n_vertices': self.n_vertices,
                'n_edges': self.n_edges,
            },
        )
    
    def write(self, vertex_path='VertexList.txt', edge_path='EdgeList.txt'):
        """
        Write the sorted vertex list and the sorted edge list to two files.
        
        Each vertex line is 'frame label vertex_ID'; each edge line is
        'frame_t label_t frame_t+1 label_t+1'.
        """
        vertex_path = Path(vertex_path)
        edge_path = Path(edge_path)
        
        with open(vertex_path, 'w') as f:
            for frame, label in self.vertex_keys():
                f.write(f'{frame} {label} {self.vertices[(frame, label)]}\n')
        
        with open(edge_path, 'w') as f:
            for (frame_0, label_0), (frame_1, label_1) in self.edge_keys():
                f.write(f'{frame_0} {label_0} {frame_1} {label_1}\n')
        
        return vertex_path, edge_path


def build_graph(edge_candidates):
    """
    Assemble the final graph from the collected edge candidates of all frame pairs.
    
    Parameters
    ----------
    edge_candidates : iterable
        ((frame_t, label_t), (frame_t+1, label_t+1)) pairs; duplicates allowed
        
    Returns
    -------
    MCCGraph
        Vertex IDs are dense (0..N-1) and assigned in sorted (frame, label) order
    """
    edge_keys = set()
    for (frame_0, label_0), (frame_1, label_1) in edge_candidates:
        edge_keys.add(((int(frame_0), int(label_0)), (int(frame_1), int(label_1))))
    
    vertex_keys = sorted({key for edge in edge_keys for key in edge})
    vertices = {key: vid for vid, key in enumerate(vertex_keys)}
    edges = frozenset((vertices[a], vertices[b]) for a, b in edge_keys)
    
    return MCCGraph(vertices, edges)
