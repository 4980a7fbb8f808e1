"""
Setup script for the lesson_scheduling package.
"""
from setuptools import setup, find_packages

setup(
    name="lesson-scheduling",
    version="1.0.0",
    description="Flight school lesson scheduling service",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.27",
        "pydantic>=2.0",
        "sqlalchemy>=2.0.0",
        "psycopg2-binary>=2.9.0",
        "python-dotenv>=1.0",
        "python-jose[cryptography]>=3.3",
        "requests>=2.31",
        "pika>=1.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "httpx>=0.25",
        ],
    },
    entry_points={
        "console_scripts": [
            "lesson-scheduling-init-db=lesson_scheduling.init_db:init_db",
        ],
    },
)
