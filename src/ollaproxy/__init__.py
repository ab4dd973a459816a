"""
ollaproxy - An Ollama-compatible gateway in front of heterogeneous LLM providers.

Routes namespaced models to Ollama-style and OpenAI-style upstreams and
normalizes their streams into Ollama chat chunks.
"""

__version__ = "0.1.0"
__author__ = "ollaproxy contributors"
__license__ = "MIT"
