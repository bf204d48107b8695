"""LLM service module.

Provides the language model layer (Ollama, Google Gemini, NVIDIA) used to
write pandas code for a question and to explain execution results.

Key modules:
- llm.py: Provider factory and client creation
- code_generator.py: Analysis/comparison code generation and result interpretation
"""
