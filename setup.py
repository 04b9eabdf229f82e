from setuptools import setup, find_packages

setup(
    name="riskbudget",
    version="0.1.0",
    description="Risk-budgeting portfolio construction and backtesting with an interactive console",
    author="riskbudget contributors",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "prompt-toolkit>=3.0.0",
        "rich>=13.0.0",
        "pandas>=2.0.0",
        "numpy>=1.24.0",
        "pyyaml>=6.0",
        "scipy>=1.10.0",
        "tabulate>=0.9.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        'console_scripts': [
            'riskbudget=riskbudget.main:main',
        ],
    },
    python_requires='>=3.8',
)
