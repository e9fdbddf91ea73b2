"""Serverless host target (Lambda-style `handler(event, context)`)."""
