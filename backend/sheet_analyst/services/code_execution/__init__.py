"""Code execution module — runs LLM-generated pandas code against uploaded sheets.

Provides DataFrame construction code generation, subprocess execution with
timeouts and stall monitoring, and the orchestrator that ties them together.
"""
