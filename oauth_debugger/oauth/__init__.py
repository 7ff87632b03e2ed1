"""OAuth building blocks: discovery, metadata, PKCE, protocol profiles and registration."""
