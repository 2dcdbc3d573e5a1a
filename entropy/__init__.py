"""Coded errors, validation, Kubernetes and Helm settings, Kafka resets, a job worker and Firehose release building."""

__version__ = "0.1.0"