"""tocbuild - metadata validation and table-of-contents assembly for documentation builds."""

__version__ = "0.4.0"
