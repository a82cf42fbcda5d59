import pathlib
from sys import version_info

from setuptools import find_packages
from setuptools import setup

install_requires = [
    "memray >= 1.10.0",
    "rich >= 11.2.0",
    "textual >= 0.55.0, < 3",
]
lint_requires = [
    "black",
    "flake8",
    "isort",
    "mypy",
    "check-manifest",
]

test_requires = [
    "ipython",
    "pytest",
    "pytest-cov",
]

about = {}
with open("src/allocviewer/_version.py") as fp:
    exec(fp.read(), about)


HERE = pathlib.Path(__file__).parent.resolve()
LONG_DESCRIPTION = (HERE / "README.md").read_text(encoding="utf-8")

setup(
    name="allocviewer",
    version=about["__version__"],
    python_requires=">=3.8.0",
    description="Browse the memory allocations of Python code in a foldable menu",
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/markdown",
    classifiers=[
        "Intended Audience :: Developers",
        "License :: OSI Approved :: Apache Software License",
        "Operating System :: POSIX :: Linux",
        "Operating System :: MacOS",
        "Programming Language :: Python :: 3.8",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: Implementation :: CPython",
        "Topic :: Software Development :: Debuggers",
    ],
    license="Apache 2.0",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    include_package_data=True,
    install_requires=install_requires,
    extras_require={
        "test": test_requires,
        "lint": lint_requires,
        "dev": test_requires + lint_requires,
    },
    entry_points={
        "console_scripts": [
            f"allocviewer{version_info.major}.{version_info.minor}=allocviewer.commands:main",
            "allocviewer=allocviewer.commands:main",
        ],
    },
)
