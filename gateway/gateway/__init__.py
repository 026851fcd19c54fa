"""gateway — JSON-RPC 2.0 dispatch over HTTP."""
