"""Crisp provider implementation."""

from crispsync_core.providers.crisp.adapter import CrispAdapter, CrispAPIError

__all__ = ["CrispAdapter", "CrispAPIError"]
