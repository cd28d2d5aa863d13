"""
Nano Banana MCP Server

Single-tool MCP server speaking line-delimited JSON-RPC over stdio. It
generates an image through OpenRouter and saves it into a project's
public images folder.
"""

__version__ = "0.1.0"

try:
    import importlib.metadata

    __version__ = importlib.metadata.version("nano-banana-mcp")
except (importlib.metadata.PackageNotFoundError, ImportError):
    # Fallback for development mode
    pass

__all__ = ["__version__"]
