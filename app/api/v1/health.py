"""
==============================================================================
Health Check Endpoints
==============================================================================

System health status endpoints for monitoring and orchestration.

==============================================================================
"""

from fastapi import APIRouter, Depends

from app.core.dependencies import get_scan_orchestrator
from app.scanner import ScanOrchestrator


router = APIRouter(prefix="/health", tags=["Health"])


class HealthController:
    """Controller for health check operations."""

    def __init__(self, orchestrator: ScanOrchestrator):
        self._orchestrator = orchestrator

    def check_detector(self) -> dict:
        """Report the bound barcode backend."""
        detector = self._orchestrator.scanner.detector
        supported = detector.supported_symbologies()
        return {
            "status": "healthy" if supported else "degraded",
            "backend": detector.name,
            "symbologies": len(supported),
        }

    def get_health(self) -> dict:
        """Get full health status."""
        detector_info = self.check_detector()

        return {
            "status": detector_info["status"],
            "components": {
                "api": "healthy",
                "detector": detector_info["status"],
                "rasterizer": "healthy",
            },
            "details": {
                "detector_backend": detector_info["backend"],
                "symbologies_supported": detector_info["symbologies"],
                "rasterizer_backend": self._orchestrator.source.rasterizer.name,
                "max_workers": self._orchestrator.max_workers,
            }
        }


@router.get("")
async def health_check(orchestrator: ScanOrchestrator = Depends(get_scan_orchestrator)):
    """
    Health check endpoint.

    Returns system status including the scanning backends.
    """
    controller = HealthController(orchestrator)
    return controller.get_health()


@router.get("/ready")
async def readiness_check():
    """Readiness check for container orchestration."""
    return {"ready": True}


@router.get("/live")
async def liveness_check():
    """Liveness check for container orchestration."""
    return {"alive": True}
