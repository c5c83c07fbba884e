from setuptools import setup, find_packages


setup(
    name="playshield",
    version="1.0.0",
    packages=find_packages(exclude=("tests", "tests.*")),
    install_requires=[
        "PyYAML==6.0.2",
    ],
    author="PlayShield Team",
    description="Hijack shield for embedded third-party video players",
    entry_points={
        "console_scripts": [
            "playshield-policy=playshield.cli:main",
        ],
    },
)
