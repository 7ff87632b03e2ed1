"""HTTP relay client and server."""
