from setuptools import setup, find_packages

setup(
    name="reachability-monitor",
    version="1.0.0",
    description="Fleet reachability poller that records alive/dead transitions in an inventory store",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    install_requires=[
        "aiohttp>=3.9.0",
        "ping3>=4.0.4",
        "psutil>=5.9.0",
        "pydantic>=2.5.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "reachability-monitor=reachability_monitor.monitor_service:main",
        ],
    },
    python_requires=">=3.11",
)
