# setup.py
from setuptools import setup, find_packages

setup(
    name="schema-walker",              # the *distribution* name on PyPI
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "pandas",                      # DataFrame rows as JSON records
        "requests",                    # http(s) fetches of referenced schemas
    ],
    extras_require={"test": ["pytest"]},
    include_package_data=True,         # so we can bundle the meta-schemas
    package_data={
        "schema_walker": ["schemas/*.json"],
    },
    python_requires=">=3.9",
    description="JSON Schema 2020-12 validator with $ref / $dynamicRef resolution",
    author="Your Name",
    license="Creative Commons Attribution-NonCommercial-ShareAlike 4.0 International License",
)
