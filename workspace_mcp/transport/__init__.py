"""Gateway transport layer - JSON-RPC over HTTP with an SSE notification stream."""
