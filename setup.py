r"""
Shim setup.py
"""

with open("README.md", "r") as fh:
    long_description = fh.read()

from setuptools import setup, find_packages

setup(
    name = 'sradispatch',
    version = '0.1.0',
    description = 'sradispatch: accession expansion and multi-source dispatch for SRA toolkit front-ends',
    license = 'GNU License',
    install_requires = ['pandas','pyyaml','requests'],
    extras_require = {'test': ['pytest']},
    packages = find_packages(include=["sradispatch", "sradispatch.*"]),
    entry_points = {
        'console_scripts': [
            'sradispatch=sradispatch.cli:main',
        ],
    },
    long_description=long_description,
    long_description_content_type="text/markdown",
    python_requires='>=3.8',
)
