"""
Agent and LLM metric facades.

Thin wrappers that bind fixed metric names and label shapes onto a
`Collector`. They hold no state of their own.
"""

from __future__ import annotations

from .metrics import Collector, Labels

# Agent status
METRIC_AGENT_STATUS = "sage_agent_status"

# Requests
METRIC_REQUESTS_TOTAL = "sage_agent_requests_total"
METRIC_REQUEST_DURATION = "sage_agent_request_duration_seconds"
METRIC_ERRORS_TOTAL = "sage_agent_errors_total"
METRIC_MESSAGES_RECEIVED = "sage_agent_messages_received_total"
METRIC_MESSAGES_SENT = "sage_agent_messages_sent_total"

# System
METRIC_ACTIVE_THREADS = "sage_agent_active_threads"
METRIC_MEMORY_USAGE = "sage_agent_memory_bytes"
METRIC_CPU_USAGE = "sage_agent_cpu_usage_percent"

# Protocol
METRIC_PROTOCOL_REQUESTS = "sage_agent_protocol_requests_total"
METRIC_PROTOCOL_ERRORS = "sage_agent_protocol_errors_total"
METRIC_HANDSHAKE_TIME = "sage_agent_handshake_duration_seconds"
METRIC_SIGNING_TIME = "sage_agent_signing_duration_seconds"
METRIC_VERIFICATION_TIME = "sage_agent_verification_duration_seconds"

# LLM API
METRIC_LLM_API_CALLS = "sage_llm_api_calls_total"
METRIC_LLM_API_ERRORS = "sage_llm_api_errors_total"
METRIC_LLM_API_LATENCY = "sage_llm_api_latency_seconds"
METRIC_LLM_TOKENS_TOTAL = "sage_llm_tokens_total"
METRIC_LLM_TOKENS_PROMPT = "sage_llm_tokens_prompt_total"
METRIC_LLM_TOKENS_OUTPUT = "sage_llm_tokens_output_total"
METRIC_LLM_COST_ESTIMATED = "sage_llm_cost_estimated_usd"


class AgentMetrics:
    """Agent-level request, message, system and protocol metrics."""

    def __init__(self, collector: Collector):
        self.collector = collector

    def set_status(self, agent_id: str, status: float) -> None:
        """Set the agent status (1=healthy, 0=unhealthy)."""
        self.collector.set_gauge(METRIC_AGENT_STATUS, status, Labels.of("agent_id", agent_id))

    def record_request(self, agent_id: str, protocol: str, duration: float) -> None:
        """Record one request and its duration in seconds."""
        labels = Labels.of("agent_id", agent_id, "protocol", protocol)
        self.collector.increment_counter(METRIC_REQUESTS_TOTAL, labels)
        self.collector.observe_histogram(METRIC_REQUEST_DURATION, duration, labels)

    def record_error(self, agent_id: str, error_type: str) -> None:
        self.collector.increment_counter(
            METRIC_ERRORS_TOTAL, Labels.of("agent_id", agent_id, "type", error_type)
        )

    def record_message_received(self, agent_id: str, protocol: str, message_type: str) -> None:
        labels = Labels.of("agent_id", agent_id, "protocol", protocol, "type", message_type)
        self.collector.increment_counter(METRIC_MESSAGES_RECEIVED, labels)

    def record_message_sent(self, agent_id: str, protocol: str, message_type: str) -> None:
        labels = Labels.of("agent_id", agent_id, "protocol", protocol, "type", message_type)
        self.collector.increment_counter(METRIC_MESSAGES_SENT, labels)

    def set_active_threads(self, agent_id: str, count: float) -> None:
        self.collector.set_gauge(METRIC_ACTIVE_THREADS, count, Labels.of("agent_id", agent_id))

    def set_memory_usage(self, agent_id: str, num_bytes: float) -> None:
        self.collector.set_gauge(METRIC_MEMORY_USAGE, num_bytes, Labels.of("agent_id", agent_id))

    def set_cpu_usage(self, agent_id: str, percent: float) -> None:
        self.collector.set_gauge(METRIC_CPU_USAGE, percent, Labels.of("agent_id", agent_id))

    def record_protocol_request(self, agent_id: str, protocol: str, operation: str) -> None:
        labels = Labels.of("agent_id", agent_id, "protocol", protocol, "operation", operation)
        self.collector.increment_counter(METRIC_PROTOCOL_REQUESTS, labels)

    def record_protocol_error(self, agent_id: str, protocol: str, error_type: str) -> None:
        labels = Labels.of("agent_id", agent_id, "protocol", protocol, "type", error_type)
        self.collector.increment_counter(METRIC_PROTOCOL_ERRORS, labels)

    def record_handshake_time(self, agent_id: str, duration: float) -> None:
        self.collector.observe_histogram(METRIC_HANDSHAKE_TIME, duration, Labels.of("agent_id", agent_id))

    def record_signing_time(self, agent_id: str, duration: float) -> None:
        self.collector.observe_histogram(METRIC_SIGNING_TIME, duration, Labels.of("agent_id", agent_id))

    def record_verification_time(self, agent_id: str, duration: float) -> None:
        self.collector.observe_histogram(
            METRIC_VERIFICATION_TIME, duration, Labels.of("agent_id", agent_id)
        )


class LLMMetrics:
    """LLM provider call, token and cost metrics."""

    def __init__(self, collector: Collector):
        self.collector = collector

    def record_call(self, provider: str, model: str, latency: float) -> None:
        """Record an LLM API call with its latency in seconds."""
        labels = Labels.of("provider", provider, "model", model)
        self.collector.increment_counter(METRIC_LLM_API_CALLS, labels)
        self.collector.observe_histogram(METRIC_LLM_API_LATENCY, latency, labels)

    def record_error(self, provider: str, model: str, error_type: str) -> None:
        labels = Labels.of("provider", provider, "model", model, "type", error_type)
        self.collector.increment_counter(METRIC_LLM_API_ERRORS, labels)

    def record_tokens(self, provider: str, model: str, prompt_tokens: int, completion_tokens: int) -> None:
        """Record token usage (prompt + completion)."""
        labels = Labels.of("provider", provider, "model", model)
        self.collector.add_counter(METRIC_LLM_TOKENS_TOTAL, float(prompt_tokens + completion_tokens), labels)
        self.collector.add_counter(
            METRIC_LLM_TOKENS_PROMPT, float(prompt_tokens), labels.with_label("type", "prompt")
        )
        self.collector.add_counter(
            METRIC_LLM_TOKENS_OUTPUT, float(completion_tokens), labels.with_label("type", "output")
        )

    def record_cost(self, provider: str, model: str, cost_usd: float) -> None:
        self.collector.add_counter(
            METRIC_LLM_COST_ESTIMATED, cost_usd, Labels.of("provider", provider, "model", model)
        )

    def record_call_with_tokens(
        self, provider: str, model: str, latency: float, prompt_tokens: int, completion_tokens: int
    ) -> None:
        self.record_call(provider, model, latency)
        self.record_tokens(provider, model, prompt_tokens, completion_tokens)

    def record_call_with_cost(
        self,
        provider: str,
        model: str,
        latency: float,
        prompt_tokens: int,
        completion_tokens: int,
        cost_usd: float,
    ) -> None:
        self.record_call(provider, model, latency)
        self.record_tokens(provider, model, prompt_tokens, completion_tokens)
        self.record_cost(provider, model, cost_usd)
