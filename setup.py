#!/usr/bin/env python3

import setuptools


def get_version():
    with open("debian/changelog", "r", encoding="utf-8") as f:
        return f.readline().split()[1][1:-1]


setuptools.setup(
    name="wb-connman",
    version=get_version(),
    description="ConnMan client: technologies, services and interactive agent over D-Bus",
    license="MIT",
    author="Wiren Board Team",
    author_email="info@wirenboard.com",
    maintainer="Wiren Board Team",
    maintainer_email="info@wirenboard.com",
    url="https://github.com/wirenboard/wb-connman",
    packages=["wb.connman"],
    install_requires=["dbus-python", "PyGObject"],
    extras_require={"test": ["pytest", "python-dbusmock"]},
    entry_points={"console_scripts": ["wb-connman-agent = wb.connman.connman_agent:main"]},
)
