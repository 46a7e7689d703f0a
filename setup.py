"""
Setup script for the workforce billing engine
"""
from setuptools import setup, find_packages

setup(
    name="workforce_billing",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.10,<3.14",
    install_requires=[
        "fastapi>=0.110.0",
        "uvicorn[standard]>=0.27.0",
        "sqlalchemy>=2.0.0",
        "pydantic>=2.0.0",
        "apscheduler>=3.10.0,<4.0.0",
        "stripe>=8.0.0",
        "httpx>=0.25.0",
        "python-dotenv>=1.0.0",
        "python-dateutil>=2.8.2",
        "alembic>=1.12.0",
        "psycopg2-binary>=2.9.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
            "httpx>=0.25.0",
        ],
    },
)
