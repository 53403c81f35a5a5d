from setuptools import setup, find_packages

setup(
    name="fee-call",
    version="0.1.0",
    description="Encode and send FeeContract.setFeePercentage calls on a development chain",
    packages=find_packages(),
    package_data={
        "fee_call": ["contracts_data/*.json"],
    },
    install_requires=[
        "web3>=6.0.0",
        "eth-account>=0.8.0",
        "eth-abi>=4.0.0",
        "eth-utils>=2.0.0",
        "aiohttp>=3.8.0",
        "pyyaml>=6.0",
        "jsonschema>=4.0.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "web3[tester]>=6.0.0",
        ],
    },
    python_requires=">=3.8",
    entry_points={
        "console_scripts": [
            "fee-call=fee_call.main:main",
        ],
    },
)
