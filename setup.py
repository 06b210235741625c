from setuptools import find_packages, setup

setup(
    name="sftpwire",
    version="0.1.0",
    description="SFTP version 3 client engine over any duplex byte stream",
    author="Daniel T Sasser II",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "paramiko>=3.0.0",
    ],
    entry_points={
        "console_scripts": [
            "sftpwire=sftpwire.__main__:main",
        ],
    },
    python_requires=">=3.10",
    extras_require={
        "dev": [
            "pytest",
            "build",
            "twine",
        ],
    },
)
