"""LLM Provider Gateway Layer.

Async infrastructure for sending evaluation prompts to LLM vendors:
  - Vendor-Specific Adapters (OpenAI, Anthropic, Perplexity, DeepSeek)
  - Per-vendor token-bucket Rate Limiter
  - Retry on 429 with exponential backoff and jitter
"""
