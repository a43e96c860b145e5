from setuptools import setup, find_packages

setup(
    name="robustcal",
    version="1.0.0",
    description="Robust magnetometer hard-iron and soft-iron calibration",
    author="NovaVista",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    install_requires=[
        "numpy>=1.24.0",
        "scipy>=1.10.0",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.9",
)
