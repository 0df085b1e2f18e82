# -*- coding: utf-8 -*-

"""setup.py"""

import os

from setuptools import setup, find_packages


def read_content(filepath):
    with open(filepath) as fobj:
        return fobj.read()


classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "License :: OSI Approved :: GNU Lesser General Public License v3 (LGPLv3)",
    "Programming Language :: Python",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: Implementation :: CPython",
]


def get_requirements(filename="requirements.txt"):
    """Read requirements, skipping empty lines and comments."""
    reqs = read_content(os.path.join(os.path.dirname(os.path.abspath(__file__)), filename))
    return [req for req in reqs.splitlines() if req.strip() and not req.startswith("#")]


long_description = read_content(
    os.path.join(os.path.dirname(os.path.abspath(__file__)), "README.rst")
)

setup(
    name="imagebundle",
    version="0.1.0",
    description="Bundle multi-arch container images for air-gapped environments",
    long_description=long_description,
    long_description_content_type="text/x-rst",
    classifiers=classifiers,
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=get_requirements(),
    entry_points={
        "console_scripts": [
            "imagebundle-create = imagebundle.create_image_bundle:create_image_bundle_main",
            "imagebundle-serve = imagebundle.serve_image_bundle:serve_image_bundle_main",
        ],
    },
    include_package_data=True,
    extras_require={"test": get_requirements("test-requirements.txt")},
)
