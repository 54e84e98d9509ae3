__all__ = ["__version__"]

# Derive the package version from installed distribution metadata when
# available. When running from a bare source checkout fall back to a local
# dev version string.
try:
	from importlib.metadata import version, PackageNotFoundError
	try:
		__version__ = version("reflector-server")
	except PackageNotFoundError:
		__version__ = "0.0.0+local"
except Exception:
	__version__ = "0.0.0+local"
