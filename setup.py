"""Setup script for the Action Execution Engine"""

from setuptools import setup, find_namespace_packages

setup(
    name="action-execution-engine",
    version="1.0.0",
    description="Org-scoped execution engine for templated HTTP actions",
    packages=find_namespace_packages(include=["app", "app.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.100.0",
        "uvicorn[standard]>=0.23.0",
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        "sqlalchemy[asyncio]>=2.0.0",
        "aiosqlite>=0.19.0",
        "alembic>=1.12.0",
        "redis>=5.0.1",
        "httpx>=0.25.0",
        "panzi-json-logic>=1.0.1",
        "structlog>=23.1.0",
        "prometheus-client>=0.18.0",
        "python-dotenv>=1.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
            "hypothesis>=6.80.0",
        ]
    },
)
