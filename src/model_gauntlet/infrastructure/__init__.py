"""
Infrastructure Layer

Adapters between the pipeline and the outside world: model endpoint
clients, the per-run model gateway and the tokenizer.
"""
