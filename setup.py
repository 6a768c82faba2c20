from setuptools import setup

with open("README.md", "r", encoding="utf-8") as fp:
    long_description = fp.read()

setup(
    name="cubicmc",
    version="1.0.0",
    description="CubicMC is a module that resolves, downloads and assembles the launch of game versions, "
                "with optional Forge or Fabric loaders, and a CLI to run it.",
    author="CubicMC contributors",
    packages=["cubicmc", "cubicmc.cli"],
    python_requires=">=3.8",
    install_requires=["certifi"],
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["cubicmc=cubicmc.cli:main"]},
    url="https://github.com/cubicmc/cubicmc",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="GPL-3.0",
)
