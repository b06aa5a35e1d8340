from setuptools import setup, find_namespace_packages

setup(
    name="apiguard",
    version="0.1.0",
    packages=find_namespace_packages(include=["apiguard", "apiguard.*"]),
    python_requires=">=3.11",
    install_requires=[
        "fastapi>=0.110",
        "starlette",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "redis>=5.0",
        "uvicorn",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-asyncio",
            "httpx",
        ],
    },
)
