"""Model Proxy – provider-agnostic chat proxy for cloud and self-hosted LLM backends."""

__version__ = "1.0.0"
