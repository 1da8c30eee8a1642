"""Core protocol: contract host, token, authentication, auction and factory."""
