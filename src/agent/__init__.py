"""
agent - Conversational agent orchestration layer.

Contains the tool registry, project query tools, the model protocol and
retry policy, the system prompt, and the executor that runs the LLM+tool loop.
"""
