"""Kubernetes operator reconciling ManagedKafka resources into Strimzi
Kafka clusters and their secrets.
"""
