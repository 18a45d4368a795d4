import os


def read(fname):
    """For reading in the README file."""
    return open(os.path.join(os.path.dirname(__file__), fname)).read()

from setuptools import setup, find_packages
setup(
    name = "CPHSRM",
    version = "1.0.0",
    packages = find_packages(where='src'),
    package_dir = {'': 'src'},

    scripts = ['scripts/cph-srm.py',
              ],

    python_requires = '>=3.6',
    install_requires = ['numpy',
                        'scipy',
                        ],
    extras_require = {'test': ['pytest']},

    # metadata for upload to PyPI
    license = "GPLv2",
    keywords = "software reliability phase-type uniformization EM",
    description = "Canonical phase-type distributions and NHPP software reliability models.",
    long_description = read('README.md'),
    long_description_content_type = 'text/markdown',

)
