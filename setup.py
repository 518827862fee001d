#!/usr/bin/env python

from setuptools import setup, find_packages

import nfsping

deps = []

setup(name='nfsping',
      version=nfsping.__version__,
      description='Pure Python NFS family RPC probe (nfsping/nfsup)',
      url='https://github.com/mprovost/NFSping',
      license='MIT',
      packages=find_packages(exclude=['tests']),
      install_requires=deps,
      extras_require={
          'tests': ['pytest']
      },
      entry_points={
          'console_scripts': ['nfsping=nfsping.ping:main',
                              'nfsup=nfsping.nfsup:main']
      }
)
