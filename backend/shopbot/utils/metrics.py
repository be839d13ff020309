# /shopbot/utils/metrics.py

from prometheus_client import Counter, Histogram, Gauge

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Conversation Metrics
flow_turns_counter = Counter('flow_turns_total', 'Conversation turns processed by the flow engine', ['step_type', 'handled'])
flow_actions_counter = Counter('flow_actions_total', 'Flow action executions', ['action', 'status'])
active_sessions_gauge = Gauge('active_sessions', 'Number of sessions held in memory')

# Collaborator Metrics
catalog_requests_counter = Counter('catalog_requests_total', 'Catalog API requests', ['operation', 'status'])
outbound_messages_counter = Counter('outbound_messages_total', 'Outbound WhatsApp messages', ['kind', 'status'])

# Performance Metrics
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
