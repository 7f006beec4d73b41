"""
Setup script for the basic REST client.
"""

from setuptools import setup

setup(
    name="basic-rest-client",
    version="0.1.0",
    description="Thin HTTP/REST client with sync and asyncio verb methods, form encoding and multipart upload",
    author="Vipin",
    author_email="vipin@example.com",
    packages=[
        "restclient",
        "restclient.cli",
        "restclient.clients",
        "restclient.http",
        "restclient.utils",
    ],
    include_package_data=True,
    install_requires=[
        "click>=8.0.0",
        "httpx>=0.27.0",
        "rich>=10.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "restclient=restclient.cli.main:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "Topic :: Internet :: WWW/HTTP",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.11",
    ],
    python_requires=">=3.11",
)
