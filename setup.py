import runpy

from setuptools import find_namespace_packages, setup

name = "pg_mask"
version = runpy.run_path("pg_mask/version.py")["PG_MASK_VERSION"]
install_requires = [
    "asyncpg",
    "pydantic>=2",
    "pyyaml",
    "concurrent-log-handler",
    "prettytable",
    "faker",
    "typing_extensions",
]


if __name__ == "__main__":
    setup(
        name=name,
        version=version,
        description="PostgreSQL table anonymization tool",
        classifiers=[
            "Intended Audience :: Developers",
            "Intended Audience :: System Administrators",
            "Programming Language :: Python",
            "Programming Language :: Python :: 3",
            "Topic :: Database",
        ],
        license="MIT",
        keywords="postgresql anonymization masking tool",
        python_requires=">=3.8",
        packages=find_namespace_packages(include=["pg_mask", "pg_mask.*"]),
        install_requires=install_requires,
        entry_points={
            "console_scripts": [
                "pg_mask = pg_mask.cli:main",
            ],
        },
    )
