"""Setuptools configuration for the anonymous message board."""

from setuptools import find_packages, setup


setup(
    name="anon-message-board",
    version="0.1.0",
    description="Anonymous message board API backed by Flask and PostgreSQL",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    py_modules=[
        "db_config",
        "init_db",
        "run",
    ],
    python_requires=">=3.11",
    install_requires=[
        "Flask>=2.2",
        "psycopg[binary]>=3.1",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
        "docs": ["sphinx>=7"],
    },
)
