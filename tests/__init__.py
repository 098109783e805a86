"""
Tests package.

Unit tests for the archmap geometry, filtering and animation engine, plus
integration tests for the loader, renderer and the MCP/web front doors.
"""
