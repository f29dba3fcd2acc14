"""
Pylayer - Async Object Layer for Key-Value Stores

Persist Python models on top of pluggable key-value engines, with
single-table inheritance, lazy relations, transactions and store versioning.
"""

from setuptools import setup, find_packages
import os

# Read README for long description
def read_long_description():
    readme_path = os.path.join(os.path.dirname(__file__), 'README.md')
    if os.path.exists(readme_path):
        with open(readme_path, 'r', encoding='utf-8') as f:
            return f.read()
    return ""

# Define optional dependencies
extras_require = {
    # Standard library engines (no extra install needed)
    'memory': [],
    'json': [],

    # Test dependencies
    'test': [
        'pytest>=7.0.0',
        'pytest-asyncio>=0.21.0',
    ],

    # Development dependencies
    'dev': [
        'mypy>=0.950',
        'build>=0.7.0',
        'twine>=4.0.0',
    ],
}

# Full development environment
extras_require['full'] = (
    extras_require['test'] +
    extras_require['dev']
)

setup(
    name="pylayer",
    version="0.1.0",
    author="",
    author_email="",
    description="Async object layer for key-value stores - models, relations, transactions, store versioning",
    long_description=read_long_description(),
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=['examples', 'tests']),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Framework :: AsyncIO",
        "Typing :: Typed",
    ],
    python_requires=">=3.10",

    # Core dependencies (zero external dependencies, pure Python)
    install_requires=[],

    # Optional dependencies
    extras_require=extras_require,

    keywords="orm object-mapping key-value-store asyncio persistence pylayer",
)
