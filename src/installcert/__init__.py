"""Bootstrap trust for a TLS server certificate into a local trust store."""
