"""kubedeploy: dependency-ordered deploy and reset of Kubernetes workloads."""

__version__ = "0.1.0"
