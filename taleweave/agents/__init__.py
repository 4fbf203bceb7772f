"""LLM agents: Director, Storyteller and Context Compressor."""
