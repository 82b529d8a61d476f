import re

from setuptools import find_packages, setup

version = re.search(r'^__version__\s*=\s*"(.*)"', open("intervalutils/__init__.py").read(), re.M).group(1)

setup(
    name="interval-utils",
    version=version,
    description="Repeated execution of functions with backoff, polling, retrying and pipelines",
    author="Mathias Lohne",
    author_email="mathias.lohne@cognite.com",
    license="Apache-2.0",
    packages=find_packages(include=["intervalutils", "intervalutils.*"]),
    install_requires=["arrow", "dacite>=1.8", "decorator>=5", "prometheus-client", "pyhumps", "pyyaml"],
    extras_require={"tests": ["pytest"]},
    python_requires=">=3.10",
)
