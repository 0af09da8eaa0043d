"""X.509 certificate lifecycle handler for CloudFormation custom resources."""

__version__ = "0.1.0"
