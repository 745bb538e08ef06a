import setuptools

with open("README.md", "r") as fh:
    long_description = fh.read()

setuptools.setup(
    name="OutbreakScan",
    version="0.1",
    description="Prospective outbreak detection: Hotelling T2, Kulldorff and Bayesian scan statistics, space-time cluster detection.",
    long_description=long_description,
    long_description_content_type="text/markdown",
    license="MIT",
    packages=setuptools.find_packages(include=["OutbreakScan", "OutbreakScan.*"]),
    classifiers=[
        "Programming Language :: Python :: 3",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.8",
    install_requires=[
        "numpy>=1.22",
        "pandas>=1.3",
        "scipy>=1.7",
        "scikit_learn>=1.0",
    ],
    extras_require={"test": ["pytest"]},
)
