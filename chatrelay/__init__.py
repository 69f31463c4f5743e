"""
ChatRelay: resilient relay between a chat client and a hosted LLM.
"""

__version__ = "0.3.0"
