"""
rsyncinc setup
    Instructions:
    # Build:
    rm -rf dist/ rsyncinc.egg-info/ build
    python3 setup.py sdist bdist_wheel
    # Upload:
    python3 -m twine upload dist/*
"""
from setuptools import setup, find_packages

with open("README.md", "r") as fh:
    LONG_DESC = fh.read()
    setup(
        name="rsyncinc",
        scripts=['bin/rsyncinc'],
        version="1.0.0",
        author="rsyncinc contributors",
        description="Incremental rsync hardlink backups with retention and disk usage tracking",
        long_description=LONG_DESC,
        long_description_content_type="text/markdown",
        keywords='rsync hardlink incremental backup retention disk usage',
        packages=find_packages(exclude=["tests", "tests.*"]),
        classifiers=[
            "Programming Language :: Python :: 3",
            "License :: OSI Approved :: MIT License",
        ],
        python_requires=">=3.8",
        install_requires=['omegaconf>=2.0'],
        extras_require={'test': ['pytest']},
    )
