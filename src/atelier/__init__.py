"""atelier: order lifecycle and pricing core for a fashion storefront."""

__version__ = "0.1.0"
