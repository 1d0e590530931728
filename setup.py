from setuptools import setup, find_packages

setup(
    name="coachcoo",
    version="0.1.0",
    packages=find_packages(include=["coachcoo", "engine", "engine.*"]),
    python_requires=">=3.11",
    install_requires=[
        "typer>=0.9.0",
        "pydantic>=2.6.3",
        "fuzzywuzzy>=0.18.0",
        "python-Levenshtein>=0.23.0",
        "python-dotenv>=1.0.0",
        "PyYAML>=6.0.1",
    ],
    extras_require={
        "test": [
            "pytest>=8.3.4",
            "pytest-asyncio>=0.23.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'coachcoo=coachcoo.cli:run',
        ],
    },
)
