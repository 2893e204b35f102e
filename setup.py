import setuptools

setuptools.setup(
    name="ghadispatch",
    description="Dispatch GitHub Actions workflows, follow the resulting run and collect its results",
    packages=setuptools.find_namespace_packages(include=["ghadispatch", "ghadispatch.*"]),
    entry_points={
        "console_scripts": [
            "ghadispatch-workflows = ghadispatch.cli.workflows:main",
            "ghadispatch-dispatch = ghadispatch.cli.dispatch:main",
            "ghadispatch-resume = ghadispatch.cli.resume:main",
            "ghadispatch-clean = ghadispatch.cli.clean:main",
            "ghadispatch-list = ghadispatch.cli.list_jobs:main",
            "ghadispatch-cancel = ghadispatch.cli.cancel:main",
        ]
    },
    version="0.1.0",
    install_requires=[
        # for talking to the GitHub REST API
        "aiohttp>=3.9",
        # for logging
        "structlog>=23.1",
        # for API responses, job records and the config file
        "pydantic>=2.4",
        # for the job ledger
        "SQLAlchemy[asyncio]>=2.0",
        "aiosqlite>=0.19",
        # For the config file and the workflow definitions
        "PyYAML>=6.0",
        # For the config file
        # (for accessing XDG_CONFIG_HOME)
        "xdg>=5.0",
        # for the command line interfaces
        "typed-argument-parser>=1.8",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.21",
        ],
    },
    python_requires=">=3.11",
)
