from setuptools import setup, find_packages

setup(
    name="treasury_nss_engine",
    version="0.1.0",
    description="Treasury bond analytics and Nelson-Siegel-Svensson curve calibration",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy",
        "pandas",
        "scipy>=1.11",
        "pydantic>=2",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.9",
)
