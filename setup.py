from setuptools import setup, find_packages

setup(
    name="mcp-swagger",
    version="0.1.0",
    package_dir={"": "src"},
    packages=find_packages("src"),
    install_requires=[
        "pydantic>=2.0",
        "pyyaml>=6.0",
        "typer>=0.9",
        "httpx>=0.25",
        "mcp>=1.9,<2",
        "psutil>=5.9",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "mcp-swagger=mcp_swagger.cli:main",
        ],
    },
    description="Expose OpenAPI/Swagger operations as MCP tools",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
)
