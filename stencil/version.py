from __future__ import annotations

from importlib import metadata


def package_version() -> str:
    """
    Версия установленного пакета.
    Не зависит от остальных модулей (во избежание циклов).
    """
    try:
        return metadata.version("stencil")
    except metadata.PackageNotFoundError:
        return "0.0.0"

__all__ = ["package_version"]
