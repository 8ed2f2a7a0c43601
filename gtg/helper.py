"""
GTG Dask Helper: Parallel Execution Set-up

The per-frame and per-frame-pair steps of the tracker are independent and run
as dask tasks. These utilities configure dask and start a local cluster for
them.
"""

import re
import weakref
from pathlib import Path
from tempfile import TemporaryDirectory, gettempdir
from typing import Any, Dict, Optional, Union

import dask
import psutil
from dask.distributed import Client, LocalCluster


# Default configuration values
DEFAULT_DASK_CONFIG = {
    'array.slicing.split_large_chunks': False,
    'distributed.comm.timeouts.connect': '120s',
    'distributed.comm.timeouts.tcp': '240s',
    'distributed.comm.retry.count': 10,
}


def configure_dask(scratch_dir: Optional[Union[str, Path]] = None,
                   config: Optional[Dict[str, Any]] = None) -> TemporaryDirectory:
    """
    Configure dask for the tracker.
    
    Parameters
    ----------
    scratch_dir : str or Path, optional
        Parent directory for dask's temporary files. Defaults to the system
        temporary directory.
    config : dict, optional
        Additional dask configuration settings applied after the defaults.
    
    Returns
    -------
    TemporaryDirectory
        Temporary directory object that should be kept alive while dask is in use.
    """
    scratch_path = Path(scratch_dir) if scratch_dir else Path(gettempdir())
    scratch_path.mkdir(parents=True, exist_ok=True)
    
    temp_dir = TemporaryDirectory(dir=scratch_path)
    dask.config.set(temporary_directory=temp_dir.name)
    dask.config.set(DEFAULT_DASK_CONFIG)
    
    if config:
        dask.config.set(config)
    
    return temp_dir


def get_cluster_info(client: Client) -> Dict[str, str]:
    """
    Print and return the dashboard connection details of a client.
    
    Parameters
    ----------
    client : Client
        Dask client connected to a cluster.
    
    Returns
    -------
    dict
        Dictionary containing the dashboard port and local link.
    """
    match = re.search(r':(\d+)/', client.dashboard_link or '')
    port = match.group(1) if match else ''
    
    print(f"Dashboard Link: {client.dashboard_link}")
    
    return {
        'port': port,
        'dashboard_link': f"localhost:{port}/status" if port else '',
    }


def start_local_cluster(n_workers: int = 4, threads_per_worker: int = 1,
                        scratch_dir: Optional[Union[str, Path]] = None,
                        **kwargs) -> Client:
    """
    Start a local dask cluster for tracking frames in parallel.
    
    Parameters
    ----------
    n_workers : int, default=4
        Number of worker processes to start.
    threads_per_worker : int, default=1
        Number of threads per worker.
    scratch_dir : str or Path, optional
        Directory to use for temporary files.
    **kwargs
        Additional keyword arguments to pass to LocalCluster.
    
    Returns
    -------
    Client
        Dask client connected to the local cluster.
    """
    temp_dir = configure_dask(scratch_dir)
    
    physical_cores = psutil.cpu_count(logical=False) or 1
    logical_cores = psutil.cpu_count(logical=True) or physical_cores
    memory = psutil.virtual_memory()
    
    # Labelling is compute bound: warn on hyper-threading, cap at logical cores
    total_threads = n_workers * threads_per_worker
    if total_threads > logical_cores:
        n_workers = max(1, logical_cores // threads_per_worker)
        print(f"Warning: Requested {total_threads} threads, but only {logical_cores} logical cores available.")
        print(f"Reducing to {n_workers} workers.")
    elif total_threads > physical_cores:
        print(f"Warning: Requested {n_workers} workers with {threads_per_worker} threads each, but only {physical_cores} physical cores available.")
    
    print(f"Memory per Worker: {memory.total / n_workers / (1024**3):.2f} GB")
    
    cluster = LocalCluster(n_workers=n_workers, threads_per_worker=threads_per_worker, **kwargs)
    client = Client(cluster)
    # Scratch directory lives as long as the client
    weakref.finalize(client, temp_dir.cleanup)
    
    get_cluster_info(client)
    
    return client
