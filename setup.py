from setuptools import setup, find_packages

setup(
    name="n8n-mcp-tools",
    version="0.1.0",
    description="MCP tools for editing and running n8n workflows",
    author="MCP Team",
    packages=find_packages(),
    install_requires=[
        "pydantic>=2.0.0",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "black>=22.0.0",
            "isort>=5.0.0",
        ],
    },
    python_requires=">=3.8",
)
