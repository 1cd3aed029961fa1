"""Request tracing and log relay.

An OpenTelemetry tracer provider stands in for the APM agent: every inbound
request gets a transaction span, outbound fetches become child spans, and
correlated log lines are shipped to the ingestion endpoint over httpx.
"""
