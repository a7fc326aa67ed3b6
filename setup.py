from setuptools import setup, find_packages

with open("requirements.txt", "r") as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith("#")]

setup(
    name="concrete-sync",
    version="0.1.0",
    packages=find_packages(include=["concrete_sync", "concrete_sync.*"]),
    include_package_data=True,
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        'console_scripts': [
            'concrete-sync=concrete_sync.cli:main',
        ],
    },
    description="Snapshot synchronization for Concrete CMS sites through a Git repository",
    keywords="concrete cms, deployment, synchronization, git",
    python_requires=">=3.8",
)
