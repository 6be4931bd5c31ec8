from pathlib import Path

from setuptools import setup

this_directory = Path(__file__).parent
long_description = (this_directory / "README.rst").read_text()

setup(
    name="keyed_ioc",
    version="0.1.0",
    license="MIT",
    description="A key based dependency injection container with automatic constructor wiring for Python 3.11 +",
    long_description=long_description,
    packages=["keyed_ioc"],
    include_package_data=True,
    platforms="any",
    python_requires=">=3.11",
    install_requires=["the-utility-belt"],
    extras_require={"test": ["pytest", "assertive>=0.2.1,<1.0"]},
    classifiers=[
        "Programming Language :: Python",
        "Development Status :: 4 - Beta",
        "Natural Language :: English",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Topic :: Software Development :: Libraries :: Application Frameworks",
    ],
)
