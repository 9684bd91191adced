#
from setuptools import setup, find_packages

def get_version():
    """
    Get version number from the viral_dynamics module.

    The easiest way would be to just ``import viral_dynamics``, but note that this may
    fail if the dependencies have not been installed yet. Instead, we've put
    the version number in a simple version_info module, that we'll import here
    by temporarily adding the package directory to the pythonpath using sys.path.
    """
    import os
    import sys

    sys.path.append(os.path.abspath(os.path.join('src', 'viral_dynamics')))
    from version_info import VERSION as version
    sys.path.pop()

    return version

def get_readme():
    """
    Load README.md text for use as description.
    """
    with open('README.md') as f:
        return f.read()

setup(
    # Module name (lowercase)
    name='viral_dynamics',

    # Version
    version=get_version(),

    description='Hierarchical Bayesian ODE model for viral-load time series.',

    long_description=get_readme(),

    long_description_content_type='text/markdown',

    license='MIT license',

    python_requires='>=3.9',

    # Packages to include
    package_dir={'': 'src'},
    packages=find_packages(where='src'),

    # List of dependencies
    install_requires=[
        'numpy',
        'pandas',
        'scipy',
    ],
    extras_require={
        'inference': [
            # NUTS sampler and the pytensor graph our ODE Op plugs into
            'pymc>=5.0',
            'pytensor>=2.14',
            'arviz>=0.16,<1.0',
        ],
        'dev': [
            # Flake8 for code style checking
            'flake8>=3',
            'pytest',
            'pytest-cov',
        ],
    },
    entry_points={
        'console_scripts': [
            'viral-dynamics=viral_dynamics.runner:main',
        ],
    },
)
