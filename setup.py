from pathlib import Path

from setuptools import find_packages, setup

SETUP_DIRECTORY = Path(__file__).resolve().parent

with (SETUP_DIRECTORY / "Readme.md").open() as ifs:
    LONG_DESCRIPTION = ifs.read()

install_requires = [
    "numpy>=1.19.0",
    "fastprogress>=1.0",
    "pandas>=1.0.0",
    "scipy>=1.0",
    "colorlog>=4",
    "pydantic>=2.0",
    "requests>=2.20",
]

setup(
    name="wikivote",
    version="0.1.0",
    description="Latent factor recommendations of wiki articles from user votes.",
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    install_requires=install_requires,
    extras_require={"test": ["pytest>=6.2"]},
    include_package_data=True,
    packages=find_packages("src"),
    python_requires=">=3.8",
    package_dir={"": "src"},
    entry_points={"console_scripts": ["wikivote = wikivote.cli:main"]},
)
