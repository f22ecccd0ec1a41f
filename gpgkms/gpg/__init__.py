"""RFC 4880 packets, for NIST P-256 ECDSA keys."""
