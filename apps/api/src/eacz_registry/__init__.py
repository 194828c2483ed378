"""EACZ Registry API - membership and licensing registry for the Estate Agents Council."""
