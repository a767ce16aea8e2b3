#coding:utf-8
"""A setuptools based setup module for msgsession package.
See:
https://packaging.python.org/en/latest/distributing.html
https://github.com/pypa/sampleproject
"""

# To use a consistent encoding
from codecs import open
from os import path
# Always prefer setuptools over distutils
from setuptools import setup, find_namespace_packages

HERE = path.abspath(path.dirname(__file__))

# Get the long description from the README file
with open(path.join(HERE, 'README.md'), encoding='utf-8') as f:
    LONG_DESCRIPTION = f.read()

# Arguments marked as "Required" below must be included for upload to PyPI.
# Fields marked as "Optional" may be commented out.

setup(
    name='msgsession',
    version='0.1.0',
    description='Socket sessions with background receive loops over ZeroMQ',
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    author='The msgsession Project',
    license='MIT',
    classifiers=[
        'Development Status :: 3 - Alpha',

        'Intended Audience :: Developers',

        'License :: OSI Approved :: MIT License',

        'Programming Language :: Python :: 3',
        'Programming Language :: Python :: 3.11',
        'Programming Language :: Python :: 3.12',

        'Operating System :: POSIX :: Linux',
        'Operating System :: Microsoft :: Windows',
        'Operating System :: MacOS',

        'Topic :: Software Development :: Libraries',
        'Topic :: System :: Networking',
        ],
    keywords='ZeroMQ messaging session socket',  # Optional
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=['msgsession*']),  # Required
    install_requires=['pyzmq>=25.0.0', 'firebird-base>=2.0', 'typer>=0.9.0',
                      'rich>=13.0.0'],
    extras_require={'test': ['pytest>=7.4.0']},
    python_requires='>=3.11, <4',
    entry_points={'console_scripts': ['msgsession = msgsession._scripts.cli:app',
                                     ],
                 }
)
