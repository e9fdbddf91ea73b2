"""Floww runtime.

Trigger registration and event dispatch for workflow bundles:
- discover the triggers a bundle declares
- match an inbound event against them
- invoke every matched handler with failure isolation
- render the outcome for a container or serverless host
"""

__version__ = "0.1.0"

from floww_runtime.runtime.config import RuntimeSettings

__all__ = ["__version__", "RuntimeSettings"]
