from setuptools import setup, find_packages

setup(
    name="chip8-handheld",
    version="1.0.0",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "numpy>=1.20.0",
        "PyYAML>=5.4",
        "matplotlib>=3.4.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "chip8-handheld=chip8_handheld.main:main",
        ],
    },
    description="A CHIP-8 / SCHIP interpreter for dual-plane grayscale handheld displays",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Topic :: System :: Emulators",
    ],
    python_requires=">=3.9",
)
