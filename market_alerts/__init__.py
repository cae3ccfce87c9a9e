"""Market alert digests: rule matching over event packs and SMTP delivery."""

__version__ = "0.1.0"
