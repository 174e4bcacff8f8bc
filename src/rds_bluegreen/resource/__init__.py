"""Resource handler for cluster blue/green deployments."""

from rds_bluegreen.resource.handler import ClusterBlueGreenResource, HandlerResult

__all__ = [
    'ClusterBlueGreenResource',
    'HandlerResult',
]
