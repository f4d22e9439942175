from setuptools import setup, find_packages

setup(
    name="hpss_hsi",
    version="1.0",
    description="Persistent hsi sessions and Prefect flows for managing data on HPSS",
    author="dylan mcreynolds",
    author_email="dmcreynolds@lbl.gov",
    packages=find_packages(),
    package_data={"hpss_hsi": ["_tests/*.yml"]},
    python_requires=">=3.9",
    install_requires=[
        "prefect",
        "python-dateutil",
        "python-dotenv",
        "pyyaml",
        "typer",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-mock",
        ],
    },
    entry_points={
        "console_scripts": [
            "hpss-hsi=hpss_hsi.cli:run",
        ],
    },
)
