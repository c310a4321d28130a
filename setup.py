from setuptools import setup, find_packages
from pathlib import Path
import sys

# Check Python version requirement
if sys.version_info < (3, 9):
    raise RuntimeError("FtpLink requires Python 3.9 or newer")

setup(
    name="FtpLink",
    version="1.0.0",
    author="Andrew Hernandez",
    author_email="andromedeyz@hotmail.com",
    description="An async FTP client engine for Python with passive-mode transfers, MLSD and ls listing parsing, and keepalive.",
    long_description=(
        open("README.md", "r", encoding="utf-8").read()
        if Path("README.md").exists()
        else "FtpLink speaks FTP so you don't have to. It logs in, negotiates what the server supports, keeps idle connections alive, and runs passive-mode listings, downloads and uploads with proper deadlines - all with clean, simple async Python code."
    ),
    long_description_content_type="text/markdown",
    url="http://github.com/ApaxPhoenix/FtpLink",
    project_urls={
        "Bug Tracker": "http://github.com/ApaxPhoenix/FtpLink/issues",
        "Source Code": "http://github.com/ApaxPhoenix/FtpLink",
    },
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Internet :: File Transfer Protocol (FTP)",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: System :: Networking",
    ],
    python_requires=">=3.9",
    install_requires=[
        "aioftp>=0.21.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    keywords="ftp, async, file transfer, networking, client, passive, mlsd",
    license="MIT",
    zip_safe=False,  # Set to False for packages with data files or C extensions
    include_package_data=True,  # Include files specified in MANIFEST.in
)
