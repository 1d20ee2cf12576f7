"""Provider adapters: one wire protocol per backend.

Modules:
- base: adapter contract, HTTP helpers, submit/poll state machine
- llamaparse / marker: polling backends
- mistral: synchronous OCR backend
- vision_llm: single chat-completion call for vision LLMs
- factory: adapter construction from registry entries
"""
