from setuptools import setup, find_packages
from pathlib import Path
import sys

# Check Python version requirement
if sys.version_info < (3, 9):
    raise RuntimeError("FtpVfs requires Python 3.9 or newer")

setup(
    name="FtpVfs",
    version="1.0.0",
    author="Andrew Hernandez",
    author_email="andromedeyz@hotmail.com",
    description="An async virtual filesystem over FTP with pausable streams, typed errors, events and extensions.",
    long_description=(
        open("README.md", "r", encoding="utf-8").read()
        if Path("README.md").exists()
        else "FtpVfs puts a filesystem face on an FTP server. Stat, read, list, write, copy and rename remote paths with asyncio, get file contents and listings as streams you can pause, branch on typed errors instead of reply codes, cache with etags, plug in extensions at runtime, and mount the whole thing over HTTP."
    ),
    long_description_content_type="text/markdown",
    url="http://github.com/ApaxPhoenix/FtpPy",
    project_urls={
        "Bug Tracker": "http://github.com/ApaxPhoenix/FtpPy/issues",
        "Source Code": "http://github.com/ApaxPhoenix/FtpPy",
    },
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Framework :: AsyncIO",
        "Topic :: Internet :: File Transfer Protocol (FTP)",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Filesystems",
    ],
    python_requires=">=3.9",
    install_requires=[
        "aioftp>=0.21.0",
        "aiohttp>=3.8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    keywords="ftp, async, vfs, virtual filesystem, streams, etag, ssl, tls",
    license="MIT",
    zip_safe=False,
)
