from setuptools import setup, find_packages

setup(
    name="teamctl",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "typer>=0.9.0",
        "rich>=13.7.0",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        "portalocker>=2.7.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "teamctl=cli.main:app",
        ],
    },
    python_requires=">=3.10",
)
