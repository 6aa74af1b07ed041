"""Linear Manager - dependency-aware bulk creation and snapshot/restore for Linear teams."""

__version__ = "0.1.0"
