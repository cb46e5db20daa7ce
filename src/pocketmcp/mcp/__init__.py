"""MCP Streamable HTTP protocol engine: JSON-RPC dispatch and session lifecycle."""
