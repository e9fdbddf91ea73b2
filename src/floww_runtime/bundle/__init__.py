"""Bundle loading: the sandboxed registration pass over user code."""

from floww_runtime.bundle.loader import Bundle, BundleLoader, LoadedBundle

__all__ = ["Bundle", "BundleLoader", "LoadedBundle"]
