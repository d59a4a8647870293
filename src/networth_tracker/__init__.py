"""networth-tracker: multi-currency household net worth with monthly FX sync."""

__version__ = "0.1.0"
