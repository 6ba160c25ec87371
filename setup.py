"""
llamasession setup.py
"""

from pathlib import Path

from setuptools import find_packages, setup

PROJECT_DIR = Path(__file__).parent.resolve()

# Read long description from README
readme_path = PROJECT_DIR / "README.md"
long_description = ""
if readme_path.exists():
    with open(readme_path, encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="llamasession",
    version="0.1.0",
    author="llamasession contributors",
    description="Stateful llama.cpp sessions with vision, cancellation and thread-safe callbacks",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "examples", "examples.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Artificial Intelligence",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Operating System :: Microsoft :: Windows",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20.0",
        "psutil>=5.9.0",
    ],
    extras_require={
        "native": [
            # ctypes bindings for llama.cpp, including the mtmd vision API
            "llama-cpp-python>=0.3.16",
        ],
        "dev": [
            "pytest>=7.0",
            "pytest-cov>=4.0",
            "pytest-asyncio>=0.21.0",
            "mypy>=1.0",
            "ruff>=0.1.0",
            "black>=23.0",
        ],
    },
    package_data={
        "llamasession": ["py.typed"],
    },
    include_package_data=True,
    zip_safe=False,
)
