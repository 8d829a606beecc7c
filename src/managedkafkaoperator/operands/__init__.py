"""Operands: one per family of resources derived from a ManagedKafka."""

__all__ = ("KafkaClusterOperand", "Operand", "SecretOperand")

from managedkafkaoperator.operands.base import Operand
from managedkafkaoperator.operands.kafkacluster import KafkaClusterOperand
from managedkafkaoperator.operands.secrets import SecretOperand
