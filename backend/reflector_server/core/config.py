from pathlib import Path
from pydantic import BaseModel
import os
import tempfile
from reflector_server import __version__
# Optionally load a config.env file for local development so overrides can
# live next to the checkout instead of the shell profile.
try:
    from dotenv import load_dotenv
    # Allow explicit override of config file path
    cfg_override = os.getenv('REFLECTOR_CONFIG_FILE')
    candidates = []
    if cfg_override:
        candidates.append(Path(cfg_override))

    candidates.append(Path.cwd() / 'config.env')
    candidates.append(Path.cwd() / 'backend' / 'config.env')

    for p in candidates:
        try:
            if p and p.exists():
                load_dotenv(str(p))
                break
        except Exception:
            continue
except Exception:
    # If python-dotenv isn't available or load fails, fall back to env vars
    pass

"""Central configuration.

Only the host program reads these values. The reflection engine takes every
type name and location as an explicit call parameter.

Env vars:
  REFLECTOR_LOG_LEVEL      - logging level (DEBUG, INFO, WARNING, ...)
  REFLECTOR_DOWNLOAD_DIR   - root for temporary copies of remote archives
  REFLECTOR_FETCH_TIMEOUT  - seconds allowed for fetching a remote archive
  REFLECTOR_MAX_SESSIONS   - cap on concurrently held API sessions
  REFLECTOR_HOST / REFLECTOR_PORT - uvicorn bind address
  REFLECTOR_VERSION        - override reported version
  REFLECTOR_API_KEY        - shared key clients send in x-reflector-api-key
"""

_diagnostics: list[str] = []


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        _diagnostics.append(f"invalid_float {name}={value!r} using={default}")
        return default


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        _diagnostics.append(f"invalid_int {name}={value!r} using={default}")
        return default


env_download_dir = os.getenv('REFLECTOR_DOWNLOAD_DIR')
if env_download_dir:
    download_dir = Path(env_download_dir)
    try:
        download_dir.mkdir(parents=True, exist_ok=True)
        _diagnostics.append(f"selected_download_dir={download_dir}")
    except Exception as e:  # pragma: no cover
        _diagnostics.append(f"download_dir_failed path={download_dir} err={e}")
        download_dir = Path(tempfile.gettempdir())
else:
    download_dir = Path(tempfile.gettempdir())


class Settings(BaseModel):
    app_name: str = 'Reflector Server'
    api_v1_prefix: str = '/api/v1'
    version: str = os.getenv('REFLECTOR_VERSION', __version__)
    # Logging level for the backend (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    log_level: str = os.getenv('REFLECTOR_LOG_LEVEL', 'INFO')
    download_dir: Path = download_dir
    fetch_timeout: float = _env_float('REFLECTOR_FETCH_TIMEOUT', 30.0)
    max_sessions: int = _env_int('REFLECTOR_MAX_SESSIONS', 64)
    host: str = os.getenv('REFLECTOR_HOST', '127.0.0.1')
    port: int = _env_int('REFLECTOR_PORT', 4160)
    # Optional shared key required on the sessions and plans routes
    api_key: str | None = os.getenv('REFLECTOR_API_KEY') or None
    diagnostics: list[str] | None = _diagnostics

settings = Settings()
