from setuptools import setup, find_namespace_packages

setup(
    name="opwatch",
    version="0.1.0",
    description="Observe the filesystem, network, subprocess and import activity of a Python program",
    author="Enrique Paredes",
    author_email="eparedesbalen@gmail.com",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["opwatch*"]),
    python_requires=">=3.10",
    install_requires=[
        "rich",  # Interactive console sink (JSON highlighting)
    ],
    extras_require={
        "test": [
            "pytest",
            "requests",
        ],
    },
    entry_points={
        'console_scripts': [
            'opwatch=opwatch.interface.cli.app:main',  # Runs a target program under instrumentation
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
