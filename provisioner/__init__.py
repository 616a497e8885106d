"""Host Provisioner — idempotent single-host provisioning for an orchestration platform node."""

__version__ = "0.1.0"
