"""Dispatch core.

Registry, matcher, context builder, dispatcher and renderer. Host adapters
(`floww_runtime.server`, `floww_runtime.serverless`) stay thin and call into
`floww_runtime.runtime.service`.
"""

__all__: list[str] = []
