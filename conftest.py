"""
Root pytest configuration for fee-call.

Registers command line options and markers shared by the unit tests and the
dev-chain test cases under fee_call/tests/.
"""

import sys
from pathlib import Path

# Allow 'import fee_call' when running pytest from a source checkout
_current_dir = Path(__file__).resolve().parent
if str(_current_dir) not in sys.path:
    sys.path.insert(0, str(_current_dir))

DEFAULT_ANVIL_TEST_PORT = 8546
DEFAULT_OUTPUT_DIR = "output"


def pytest_addoption(parser):
    """Add custom command line options for pytest."""
    parser.addoption(
        "--rpc-url",
        action="store",
        default=None,
        help="Use an already running dev chain instead of anvil or the in-process EVM"
    )
    parser.addoption(
        "--anvil-port",
        action="store",
        type=int,
        default=DEFAULT_ANVIL_TEST_PORT,
        help="Port for the anvil node started by the test session"
    )
    parser.addoption(
        "--output-dir",
        action="store",
        default=DEFAULT_OUTPUT_DIR,
        help="Output directory for test results"
    )


def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line(
        "markers", "dev_chain: mark test as deploying to a dev chain (anvil, --rpc-url or in-process EVM)"
    )
    config.addinivalue_line(
        "markers", "slow: mark test as slow running"
    )
