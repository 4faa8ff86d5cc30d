#! /usr/bin/env python3

import re
from pathlib import Path

from setuptools import setup

install_requires = [
    "google-api-core>=2.11",
    "google-auth>=2.16",
    "google-cloud-datastore>=2.16",
    "google-cloud-storage>=2.10",
]

tests_require = [
    "pytest>=6",
]

setup_requires = ["setuptools", "wheel >= 0.25.0"]


def read_file(rel_path: str):
    return Path(__file__).parent.joinpath(rel_path).read_text()


def get_version():
    locals_ = {}
    version_line = re.compile(
        r'^[\w =]*__version__ = "\d+\.\d+\.\d+\.?\w*\d*"$'
    )
    try:
        for ln in filter(
            version_line.match,
            read_file("pkgstore/__init__.py").splitlines(),
        ):
            exec(ln, locals_)
    except (ImportError, RuntimeError):
        pass
    return locals_["__version__"]


setup(
    name="pkgstore",
    description=(
        "Package registry storage on Google Cloud Storage and Datastore."
    ),
    long_description=read_file("README.rst"),
    version=get_version(),
    packages=["pkgstore"],
    python_requires=">=3.7",
    install_requires=install_requires,
    setup_requires=setup_requires,
    extras_require={"test": tests_require},
    tests_require=tests_require,
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: System Administrators",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.7",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Software Development :: Build Tools",
        "Topic :: System :: Software Distribution",
    ],
    zip_safe=True,
    entry_points={
        "console_scripts": ["pkgstore=pkgstore.__main__:main"],
    },
    platforms=["any"],
)
