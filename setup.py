"""Setup script for lab-workflow package following Cosmic Python pattern."""

from setuptools import setup, find_namespace_packages

setup(
    name="lab-workflow",
    version="1.0.0",
    description="Laboratory case workflow engine - assignment, production, transit and billing",
    author="Lab Workflow Team",
    package_dir={"": "src"},
    packages=find_namespace_packages(where="src", include=["lab_workflow*"]),
    py_modules=["config"],
    python_requires=">=3.11",
    install_requires=[
        "fastapi",
        "uvicorn[standard]",
        "pydantic",
        "sqlalchemy>=2.0",
        "psycopg2-binary",
        "redis",
    ],
    extras_require={
        "test": [
            "pytest",
            "pytest-cov",
            "httpx",
            "fakeredis",
        ],
        "dev": [
            "black",
            "flake8",
            "mypy",
            "pre-commit",
        ],
    },
    entry_points={
        "console_scripts": [
            "lab-workflow-api=lab_workflow.entrypoints.workflow_api:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Healthcare Industry",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3.11",
        "Topic :: Office/Business",
    ],
)
