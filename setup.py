from setuptools import setup, find_packages

setup(
    name='pyPT',
    version='0.1',
    description='Pseudo-transient Stokes and heat-diffusion solvers on staggered grids',
    author='Saman Seifi',
    packages=find_packages(exclude=['tests', 'benchmarks']),  # Automatically finds pyPT/
    install_requires=[
        'numpy',
        'scipy',
        'matplotlib',
        'h5py',
        'numba'
    ],
    extras_require={
        'mpi': ['mpi4py'],
        'gpu': ['torch'],
        'test': ['pytest'],
    },
    include_package_data=True,
    zip_safe=False,
)
