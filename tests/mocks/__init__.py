"""
Mock adapters for testing.

Mock implementations of external dependencies (subprocesses) so tests run
without Docker, compose or git.
"""

from tests.mocks.mock_command_runner import MockCall, MockCommandRunner

__all__ = ["MockCall", "MockCommandRunner"]
