import os

from setuptools import find_namespace_packages, setup

with open(os.path.join("torchsubst", "_version.py")) as f:
    __version__ = f.readlines()[-1].split()[-1].strip("\"'")

if __name__ == '__main__':
    setup(
        name='torchsubst',
        version=__version__,
        description='Reversible Markov substitution models with PyTorch',
        python_requires='>=3.9',
        packages=find_namespace_packages(include=['torchsubst', 'torchsubst.*']),
        install_requires=[
            'numpy>=1.20',
            'scipy>=1.7',
            'torch>=1.9',
        ],
        extras_require={
            'test': ['pytest'],
        },
        classifiers=[
            'Programming Language :: Python :: 3',
            'License :: OSI Approved :: GNU General Public License v3 (GPLv3)',
            'Topic :: Scientific/Engineering :: Bio-Informatics',
        ],
    )
