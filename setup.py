from setuptools import setup, find_packages

setup(
    name="vehicle-mpc",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    install_requires=[
        "casadi>=3.6",
        "numpy",
        "matplotlib",
    ],
    extras_require={
        "test": ["pytest", "pytest-mock"],
    },
    package_data={"vehicle_mpc": ["config/*.json"]},
    python_requires=">=3.8",
    include_package_data=True,
)
