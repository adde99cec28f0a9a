# setup.py
from setuptools import setup, find_packages

setup(
    name="tgatlantis",
    version="0.1.0",
    description="Generate Atlantis project definitions from a Terragrunt/OpenTofu repository",
    author="Enrique Paredes",
    author_email="eparedesbalen@gmail.com",
    package_dir={"": "src"},
    packages=find_packages(where="src"),  # Finds the 'tgatlantis' package under src/
    python_requires=">=3.9",
    install_requires=[
        "python-hcl2>=4.3,<5",  # HCL native syntax parsing
    ],
    extras_require={
        "test": [
            "pytest>=7",
        ],
    },
    entry_points={
        'console_scripts': [
            'tgatlantis=tgatlantis.main:main',
        ],
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Operating System :: OS Independent",
    ],
)
