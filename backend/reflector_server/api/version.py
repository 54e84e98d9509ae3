from typing import Any, Dict
import platform

from fastapi import APIRouter

from reflector_server.core.config import settings

router = APIRouter()


def get_version_payload() -> Dict[str, Any]:
    return {
        'version': settings.version,
        'python': platform.python_version(),
    }


@router.get('/version')
async def version():
    return get_version_payload()
