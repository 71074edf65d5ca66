from setuptools import setup, find_packages
from pathlib import Path

# Read README.md if available (for development installs)
# For wheel builds, use a fallback description
readme_path = Path(__file__).parent / "README.md"
if readme_path.exists():
    long_description = readme_path.read_text(encoding="utf-8")
else:
    long_description = "Nested-set (modified preorder tree traversal) hierarchies stored in a flat SQL table."

setup(
    name="nested-tree",
    version="0.3.1",
    description="Nested-set (modified preorder tree traversal) hierarchies stored in a flat SQL table",
    long_description=long_description,
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: Database",
    ],
    python_requires=">=3.9",
    install_requires=[
        "sqlalchemy>=2.0.0",
        "networkx>=3.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0",
        "typer>=0.9.0",
    ],
    entry_points={
        "console_scripts": [
            "nested-tree=nested_tree.cli:main",
        ],
    },
    extras_require={
        "dev": [
            "pytest",
            "coverage",
            "hypothesis",
        ],
        "postgres": ["psycopg2-binary>=2.9"],
        "mysql": ["pymysql>=1.0"],
    },
)
