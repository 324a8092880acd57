"""
EduFed - Federated Learning Coordinator for E-Learning Platforms

This package coordinates privacy-preserving model training across
student devices:
- Participant registry with round-by-round status tracking
- FedAvg aggregation weighted by local data size
- Gaussian-mechanism noise and privacy budget accounting
- Periodic and on-demand training rounds with metrics publishing
- REST API and CLI for dashboards and operators
"""

__version__ = "1.0.0"
__author__ = "EduFed Contributors"

from edufed.federated import FederatedCoordinator, RoundMetrics

__all__ = ["FederatedCoordinator", "RoundMetrics"]
