from setuptools import setup, find_packages

setup(
    name="gemini-code-assist-proxy",
    version="0.1.0",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "httpx>=0.27",
        "pydantic>=2.5",
        "structlog>=24.1",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
            "pytest-httpx>=0.32",
        ],
    },
    entry_points={
        "console_scripts": [
            "gemini-proxy=gemini_proxy.main:main",
        ],
    },
    description="OpenAI-compatible chat completions proxy for Google Gemini Code Assist.",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.10",
)
