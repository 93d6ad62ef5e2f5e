from .helix import HelixClient

__all__ = ["HelixClient"]
