"""
releasegate: staged deployment orchestration with a post-deploy health gate.
"""

__version__ = "0.1.0"
