"""Demo MCP chatbot: intent dispatcher, tool server and push channel."""

__version__ = "2.0.0"
