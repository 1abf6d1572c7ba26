"""Text generation providers."""
