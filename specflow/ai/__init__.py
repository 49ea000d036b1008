"""
Specflow
AI module.

Submodules:
    - gateway: LLM Gateway (provider routing, error classification, retry)
    - review: Specification review gateway (sanitising, prompts, parsing, cache)
"""
