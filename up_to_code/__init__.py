"""up-to-code: keep one npm dependency current across GitHub and GitLab organizations."""

__version__ = "0.1.0"
