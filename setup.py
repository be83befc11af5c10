#!/usr/bin/env python

from setuptools import setup

import ecashlib

setup(name='ecashlib',
      version=ecashlib.VERSION,
      description='Offline compact e-cash with threshold issuance over BLS12-381',
      author='George Danezis',
      author_email='g.danezis@ucl.ac.uk',
      url=r'https://pypi.python.org/pypi/ecashlib/',
      packages=['ecashlib'],
      license="2-clause BSD",
      long_description="""A library implementing threshold-issued ticketbooks: Pointcheval-Sanders signatures, blind withdrawal, unlinkable spending and double spend identification""",

      python_requires=">=3.8",
      setup_requires=["pytest >= 2.6.4"],
      install_requires=[
            "py_ecc >= 6.0.0",
            "msgpack >= 1.0.0",
            "base58 >= 2.0.0",
            "pytest >= 2.5.0",
      ],
      extras_require={
            "test": [
                  "pytest >= 2.5.0",
                  "pytest-cov >= 1.8.1",
                  "paver >= 1.2.3",
            ],
      },
      zip_safe=False,
)
