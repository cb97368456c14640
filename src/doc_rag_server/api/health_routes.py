from datetime import datetime, timezone

from fastapi import APIRouter, Depends

from .. import __version__
from ..services import Services
from .dependencies import get_services
from .models import Envelope, HealthStatus

router = APIRouter(tags=["health"])


@router.get("/health", response_model=Envelope[HealthStatus])
def health(services: Services = Depends(get_services)) -> Envelope[HealthStatus]:
    return Envelope(
        data=HealthStatus(
            timestamp=datetime.now(timezone.utc),
            version=__version__,
            queue_backend=services.queue_backend,
        )
    )
