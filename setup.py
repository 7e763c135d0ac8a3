from setuptools import setup, find_packages


setup(
    name="szip",
    version="0.1",
    packages=find_packages(include=["szip", "szip.*"]),
    description="A small ZIP archiver with path-traversal protection, integrity digests and a password gate.",
    author="vercingetorx",
    install_requires=[
        "argon2-cffi>=23.1.0",
    ],
    entry_points={
        "console_scripts": [
            "szip=szip.cli:main",
            "sunzip=szip.cli:unzip_main",
        ]
    },
)
