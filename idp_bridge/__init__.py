"""Identity-provider integration layer for OIDC authorization code logins."""

__version__ = "0.1.0"
