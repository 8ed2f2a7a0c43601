from setuptools import setup, find_packages


setup(
    name='gtg',
    description="Grab'em Tag'em Graph'em detection and tracking of Mesoscale Convective Complexes",
    packages=find_packages(include=['gtg', 'gtg.*']),
    python_requires='>=3.9',
    install_requires=[
        'numpy',
        'pandas',
        'xarray',
        'dask[array,distributed]',
        'scipy',
        'scikit-image>=0.19',
        'numba',
        'psutil',
    ],
    extras_require={
        'test': ['pytest'],
    },
    use_scm_version={
        "write_to": "gtg/_version.py",
        "write_to_template": '__version__ = "{version}"',
        "tag_regex": r"^(?P<prefix>v)?(?P<version>[^\+]+)(?P<suffix>.*)?$",
        "fallback_version": "0.1.0",
    }
)
