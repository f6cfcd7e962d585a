from setuptools import setup, find_packages

setup(
    name="tether",
    version="0.1.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "fastapi",
        "uvicorn",
        "sqlalchemy>=2.0",
        "alembic",
        "psycopg2-binary",
        "redis",
        "celery",
        "python-dotenv",
        "pydantic>=2",
        "pydantic-settings",
        "prometheus-client",
        "prometheus-fastapi-instrumentator",
        "firebase-admin",
        "requests",
        "beautifulsoup4",
        "python-dateutil",
        "lunar-python",
    ],
    extras_require={
        "test": [
            "pytest",
            "httpx",
        ],
    },
)
