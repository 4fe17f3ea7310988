"""
potree: Lazy reader for Potree 2.0 point cloud octrees
Hierarchy decoding, on-demand point decoding and node datasets.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README
readme_file = Path(__file__).parent / 'README.md'
long_description = readme_file.read_text() if readme_file.exists() else ''

setup(
    name='potree-reader',
    version='0.1.0',
    description='Lazy reader for Potree 2.0 point cloud octrees',
    long_description=long_description,
    long_description_content_type='text/markdown',
    author='Potree Reader Team',
    author_email='your.email@example.com',
    url='https://github.com/yourusername/potree-reader',
    packages=find_packages(exclude=['tests', 'examples', 'docs']),
    python_requires='>=3.8',
    install_requires=[
        'numpy>=1.21.0',
        'pyyaml>=5.4',
    ],
    extras_require={
        'datasets': [
            'torch>=1.12.0',
        ],
        'dev': [
            'torch>=1.12.0',
            'pytest>=7.0.0',
            'pytest-cov>=3.0.0',
            'black>=22.0.0',
            'flake8>=4.0.0',
            'isort>=5.10.0',
        ],
    },
    classifiers=[
        'Development Status :: 3 - Alpha',
        'Intended Audience :: Science/Research',
        'Topic :: Scientific/Engineering :: GIS',
        'License :: OSI Approved :: MIT License',
        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.8',
        'Programming Language :: Python :: 3.9',
        'Programming Language :: Python :: 3.10',
    ],
    keywords='point-cloud potree octree lidar lod',
)
