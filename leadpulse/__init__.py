"""Lead capture, scoring and click analytics for link-hub pages."""

__version__ = "0.1.0"
