"""
netbench
Point-to-point TCP latency, data rate and BDP measurement
"""
from setuptools import setup, find_packages

setup(
    name="netbench",
    version="1.0.0",
    description="Point-to-point TCP latency and throughput measurement CLI",
    packages=find_packages(exclude=["tests*"]),
    python_requires=">=3.10",
    install_requires=[
        "pandas>=1.5",
        "matplotlib>=3.6",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "netbench=netbench.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: System :: Networking :: Monitoring",
        "Programming Language :: Python :: 3.10",
    ],
)
