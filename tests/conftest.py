"""
pytest configuration and fixtures for the XML decoder tests.

Provides reusable fixtures for:
- Namespace contexts used across the test modules
- Sample documents from the user/profile scenario
- Hypothesis property-based testing configuration
"""

import os
import sys
from pathlib import Path

import pytest

# Add project paths
sys.path.insert(0, str(Path(__file__).parent.parent / "tools"))

# Configure Hypothesis profiles
from hypothesis import settings, Verbosity, Phase

# Default profile: balanced speed and coverage
settings.register_profile(
    "default",
    max_examples=100,
    deadline=None,  # Disable deadline for slow interpreters
)

# CI profile: more thorough testing
settings.register_profile(
    "ci",
    max_examples=500,
    deadline=None,
    suppress_health_check=[],
    phases=[Phase.explicit, Phase.reuse, Phase.generate, Phase.shrink],
)

# Dev profile: fast iteration
settings.register_profile(
    "dev",
    max_examples=10,
    deadline=None,
)

# Debug profile: verbose output
settings.register_profile(
    "debug",
    max_examples=10,
    verbosity=Verbosity.verbose,
    deadline=None,
)

# Load profile from environment
settings.load_profile(os.environ.get("HYPOTHESIS_PROFILE", "default"))


NS_USER = "http://example.com/user"
NS_PROFILE = "http://example.com/schema/profile"
NS_ADDRESS = "http://example.com/address"


@pytest.fixture
def user_namespaces():
    """Namespace context for the user/profile documents."""
    from namespace_context import NamespaceContext
    return NamespaceContext({"": NS_USER, "ns1": NS_PROFILE, "addr": NS_ADDRESS})


@pytest.fixture
def user_document():
    """
    A user document mixing the default namespace with a prefixed one.

    Usage:
        def test_user(user_document, user_namespaces):
            user = decode_bytes(user_document, User, user_namespaces)
    """
    return (
        f'<user xmlns="{NS_USER}" xmlns:p="{NS_PROFILE}">'
        '<name>Jane</name>'
        '<p:bio>Hi</p:bio>'
        '</user>'
    ).encode()


# Markers for test categorization
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as full-document decoding tests"
    )
