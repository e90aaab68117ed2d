from emailgate.core.infra.health import HealthServer, HealthStatus

__all__ = ["HealthServer", "HealthStatus"]
